"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the Content-Type header sent with a file.

The table is deliberately small and FIXED. Matching is CASE-SENSITIVE on
the file name suffix, so "logo.PNG" is served as text/plain:

    ┌────────────────────────────────────────────────────────────────────┐
    │   Extension        Content-Type                                    │
    ├────────────────────────────────────────────────────────────────────┤
    │   .html            text/html; charset=utf-8                        │
    │   .css             text/css                                        │
    │   .js              application/javascript                          │
    │   .json            application/json                                │
    │   .png             image/png                                       │
    │   .jpg / .jpeg     image/jpeg                                      │
    │   .gif             image/gif                                       │
    │   .svg             image/svg+xml                                   │
    │   (anything else)  text/plain                                      │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from pathlib import Path
from typing import Union


MIME_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
}

DEFAULT_MIME_TYPE = "text/plain"


def get_content_type(path: Union[str, Path]) -> str:
    """
    Get the Content-Type header value for a file.

    Only the last suffix counts, and it is compared as-is (no lowercasing):

        >>> get_content_type("index.html")
        'text/html; charset=utf-8'
        >>> get_content_type("archive.tar.gz")
        'text/plain'
        >>> get_content_type("PHOTO.JPG")
        'text/plain'
    """
    return MIME_TYPES.get(Path(path).suffix, DEFAULT_MIME_TYPE)
