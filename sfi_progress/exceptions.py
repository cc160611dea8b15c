"""
Exception types for the SFI progress service.

Remote failures are raised by the repository layer and swallowed at the
call sites that treat them as transient (mirrors, reconciliation, badge sync).
"""


class ProgressServiceError(Exception):
    """Base class for progress service errors"""


class RemoteStoreError(ProgressServiceError):
    """Remote profile store could not be read or written"""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class ContentServiceError(RemoteStoreError):
    """Content Service request failed (badge catalog, topic membership)"""
