"""Object records persisted in the metadata store, one per identifier.

The JSON form is tagged by ``type`` (``short`` | ``file`` | ``code``) with
snake_case fields. Records are immutable once written.
"""

from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from snipdrop.core.errors import SerializationFailure


class ShortRecord(BaseModel):
    """A shortened URL; redirects to ``target`` and never expires."""

    type: Literal["short"] = "short"
    target: str

    model_config = {"frozen": True}


class FileRecord(BaseModel):
    """A binary upload served inline (images/videos) or as a download."""

    type: Literal["file"] = "file"
    is_admin: bool
    path: Path
    mimetype: str
    time_added: int

    model_config = {"frozen": True}


class CodeRecord(BaseModel):
    """A text upload rendered as a paste. ``mimetype`` holds the file extension, e.g. ``rs``."""

    type: Literal["code"] = "code"
    is_admin: bool
    path: Path
    mimetype: str
    time_added: int

    model_config = {"frozen": True}


ObjectRecord = Annotated[Union[ShortRecord, FileRecord, CodeRecord], Field(discriminator="type")]

_record_adapter: TypeAdapter[ObjectRecord] = TypeAdapter(ObjectRecord)


def parse_record(raw: str | bytes) -> ShortRecord | FileRecord | CodeRecord:
    try:
        return _record_adapter.validate_json(raw)
    except ValidationError as e:
        raise SerializationFailure(f"Failed to parse record: {e.error_count()} validation error(s)") from e


def dump_record(record: ShortRecord | FileRecord | CodeRecord) -> str:
    return record.model_dump_json()


def record_is_admin(record: ShortRecord | FileRecord | CodeRecord) -> bool:
    # Short links carry no admin flag.
    if isinstance(record, ShortRecord):
        return False
    return record.is_admin


def record_path(record: ShortRecord | FileRecord | CodeRecord) -> Path | None:
    if isinstance(record, (FileRecord, CodeRecord)):
        return record.path
    return None
