"""Response and request models of the request/response API."""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Language(str, Enum):
    """Translation target languages."""

    CHINESE_SIMPLIFIED = "zh"
    ENGLISH_US = "en"
    JAPANESE = "ja"
    KOREAN = "ko"
    FRENCH = "fr"
    GERMAN = "de"


class ExportKind(str, Enum):
    TRANSCRIPT = "transcript"
    OVERVIEW = "overview"
    SUMMARY = "summary"


class ExportFormat(str, Enum):
    PDF = "pdf"
    TXT = "txt"
    DOCX = "docx"


class TaskType(str, Enum):
    NORMAL_QUALITY = "normal_quality"
    NORMAL_SPEED = "normal_speed"
    SHORT_ASR_QUALITY = "short_asr_quality"
    SHORT_ASR_SPEED = "short_asr_speed"


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Utterance(_Model):
    """A speech segment with timing (seconds) and speaker."""

    start_time: float
    end_time: float
    speaker: int = 0
    text: str


class UploadTask(_Model):
    """Upload accepted for normal transcription; poll the task id."""

    kind: Literal["task"] = "task"
    task_id: str


class UploadOneSentence(_Model):
    """Short audio transcribed inline."""

    kind: Literal["one_sentence"] = "one_sentence"
    status: str
    message: str = ""
    data: str = ""


UploadResult = Union[UploadTask, UploadOneSentence]


class CallbackHistory(_Model):
    timestamp: str
    status: str
    code: int


class TranscribeStatus(_Model):
    status: str
    overview_md: Optional[str] = None
    summary_md: Optional[str] = None
    details: List[Utterance] = Field(default_factory=list)
    message: Optional[str] = None
    usage_id: Optional[str] = None
    task_id: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    callback_history: List[CallbackHistory] = Field(default_factory=list)
    task_type: Optional[TaskType] = None


class ShareLink(_Model):
    share_url: str
    expiration_day: int
    expired_at: str


class TextTranslation(_Model):
    status: str
    data: str


class UtteranceTranslation(_Model):
    status: str
    lang: Language
    details: List[Utterance] = Field(default_factory=list)


class TranslateDetail(_Model):
    utterance: Utterance
    translation: str = ""


class TranscriptTranslation(_Model):
    """Translation of a transcription task."""

    task_type: Literal["transcribe"] = "transcribe"
    task_id: str
    status: str
    lang: Language
    message: Optional[str] = None
    details: List[TranslateDetail] = Field(default_factory=list)


class SummaryTranslation(_Model):
    """Translation of a summary task."""

    task_type: Literal["summary"] = "summary"
    task_id: str
    status: str
    lang: Language
    message: Optional[str] = None
    overview_md: Optional[str] = None
    summary_md: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)


TranslationResult = Union[TranscriptTranslation, SummaryTranslation]


class SummaryContent(_Model):
    short: str = ""
    long: str = ""
    all: str = ""
    keywords: List[str] = Field(default_factory=list)


class CallbackRequest(_Model):
    """Task completion notification relayed back to the service."""

    task_id: str
    status: str
    code: int
    utterances: List[Utterance] = Field(default_factory=list)
    summary: Optional[SummaryContent] = None
    duration: Optional[int] = None
    message: Optional[str] = None
