from cloudconvert.utils.storage.local_storage import LocalStorage

__all__ = ["LocalStorage"]
