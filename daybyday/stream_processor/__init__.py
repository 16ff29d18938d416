from daybyday.stream_processor.main import BatchFailedError, BatchResult, StreamProcessor, handler

__all__ = ["BatchFailedError", "BatchResult", "StreamProcessor", "handler"]
