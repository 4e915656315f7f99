from kagami.storage.call_log import CallLogRepository, LlmCallRecord, LogRepository

__all__ = ["CallLogRepository", "LlmCallRecord", "LogRepository"]
