"""Value types recorded while a book is assembled."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NavigationPoint(BaseModel):
    """One NCX ``navPoint``: a chapter entry in the table of contents.

    Args:
        id (str): ``NavPoint-<n>`` identifier.
        play_order (int): 1-based reading position.
        label (str): Chapter title shown by readers.
        src (str): Chapter path relative to the navigation document.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    play_order: int = Field(..., ge=1)
    label: str
    src: str = Field(..., min_length=1)


class ManifestItem(BaseModel):
    """One ``<item>`` of the package manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    href: str = Field(..., min_length=1)
    media_type: str = Field(..., alias="media-type", min_length=1)

    @field_validator("id")
    @classmethod
    def _xml_id(cls, value: str) -> str:
        if not (value[0].isalpha() or value[0] == "_"):
            raise ValueError(f"manifest id must start with a letter: {value!r}")
        return value


class SpineItemRef(BaseModel):
    """One ``<itemref>`` of the spine, referencing a chapter manifest item."""

    model_config = ConfigDict(frozen=True)

    idref: str = Field(..., min_length=1)
