from .status_poller import StatusPoller, CancelHandle, map_remote_status

__all__ = [
    'StatusPoller',
    'CancelHandle',
    'map_remote_status'
]
