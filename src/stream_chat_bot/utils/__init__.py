from .time_utils import iso_from_ms, normalize_timestamp, now_ms, to_epoch_ms

__all__ = ["iso_from_ms", "normalize_timestamp", "now_ms", "to_epoch_ms"]
