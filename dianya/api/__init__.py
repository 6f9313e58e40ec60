"""Request/response API of the transcription service."""

from .client import TranscribeApi
from .models import (
    CallbackHistory,
    CallbackRequest,
    ExportFormat,
    ExportKind,
    Language,
    ShareLink,
    SummaryContent,
    SummaryTranslation,
    TaskType,
    TextTranslation,
    TranscribeStatus,
    TranscriptTranslation,
    TranslateDetail,
    TranslationResult,
    UploadOneSentence,
    UploadResult,
    UploadTask,
    Utterance,
    UtteranceTranslation,
)

__all__ = [
    "CallbackHistory",
    "CallbackRequest",
    "ExportFormat",
    "ExportKind",
    "Language",
    "ShareLink",
    "SummaryContent",
    "SummaryTranslation",
    "TaskType",
    "TextTranslation",
    "TranscribeApi",
    "TranscribeStatus",
    "TranscriptTranslation",
    "TranslateDetail",
    "TranslationResult",
    "UploadOneSentence",
    "UploadResult",
    "UploadTask",
    "Utterance",
    "UtteranceTranslation",
]
