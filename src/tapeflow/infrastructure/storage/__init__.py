from ._data_storage import DataStorage, next_data_id

__all__ = [
    DataStorage.__name__,
    next_data_id.__name__,
]
