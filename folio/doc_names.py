#!/usr/bin/env python3
"""
Document name rules for FOLIO

Turns user-supplied names into the canonical names stored on disk and
decides, from the extension alone, what kind of document a name refers to
and how it is served.
"""

import re
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from typing import NamedTuple, Optional, Tuple

from cms_errors import InvalidInput


class Category(Enum):
    """Content category derived from a file extension"""
    TEXT = "text"
    IMAGE = "image"
    PDF = "pdf"
    UNKNOWN = "unknown"


class Classification(NamedTuple):
    category: Category
    content_type: Optional[str]


TEXT_EXTENSIONS = (".md", ".txt", ".doc")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".gif", ".png")
PDF_EXTENSIONS = (".pdf",)
UPLOAD_EXTENSIONS = TEXT_EXTENSIONS + IMAGE_EXTENSIONS + PDF_EXTENSIONS

MARKDOWN_EXTENSION = ".md"

CONTENT_TYPES = {
    '.md': 'text/html',
    '.txt': 'text/plain',
    '.doc': 'text/plain',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.png': 'image/png',
    '.pdf': 'application/pdf',
}

_STRIPPED_FROM_BASE = re.compile(r"[\s'\"]+")


def split_extension(name: str) -> Tuple[str, str]:
    """Split on the last dot; the extension keeps its leading dot"""
    base, dot, extension = name.rpartition('.')
    if not dot:
        return name, ''
    return base, dot + extension


def sanitize(raw_name: str) -> str:
    """
    Normalize a user-supplied name into its stored form.

    Whitespace and quote characters are removed from the base name and the
    extension is lower-cased. The base keeps its case. An empty base is
    returned as-is; callers decide whether that is acceptable.
    """
    base, extension = split_extension(raw_name.strip())
    base = _STRIPPED_FROM_BASE.sub('', base)
    extension = _STRIPPED_FROM_BASE.sub('', extension).lower()
    return base + extension


def classify(name: str) -> Classification:
    """Map a name's extension to its category and content type"""
    extension = split_extension(name)[1].lower()

    if extension in TEXT_EXTENSIONS:
        category = Category.TEXT
    elif extension in IMAGE_EXTENSIONS:
        category = Category.IMAGE
    elif extension in PDF_EXTENSIONS:
        category = Category.PDF
    else:
        return Classification(Category.UNKNOWN, None)

    return Classification(category, CONTENT_TYPES[extension])


def is_markdown(name: str) -> bool:
    return split_extension(name)[1].lower() == MARKDOWN_EXTENSION


def is_text(name: str) -> bool:
    return classify(name).category is Category.TEXT


def has_allowed_extension(name: str, allowed: Tuple[str, ...]) -> bool:
    return split_extension(name)[1].lower() in allowed


def validate_new_name(raw_name: str, allowed: Tuple[str, ...] = TEXT_EXTENSIONS) -> str:
    """Validate a name typed into the create or rename form and sanitize it"""
    name = raw_name.strip()
    if not name:
        raise InvalidInput("A name is required.")
    if not has_allowed_extension(name, allowed):
        raise InvalidInput(
            "Please include a valid extension for your file "
            f"(use {', '.join(allowed)})."
        )

    stored = sanitize(name)
    if not split_extension(stored)[0]:
        raise InvalidInput("A name is required.")
    return stored


def validate_upload_name(filename: Optional[str]) -> str:
    """Validate the client filename of an uploaded file and sanitize it"""
    if not filename or not filename.strip():
        raise InvalidInput("Please select a file to upload.")

    # Browsers may send a full client-side path
    name = PureWindowsPath(PurePosixPath(filename.strip()).name).name
    if not has_allowed_extension(name, UPLOAD_EXTENSIONS):
        raise InvalidInput(
            f"Unsupported file type. Please only use {', '.join(UPLOAD_EXTENSIONS)}."
        )

    stored = sanitize(name)
    if not split_extension(stored)[0]:
        raise InvalidInput("Please select a file to upload.")
    return stored
