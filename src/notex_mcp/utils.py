"""Small helpers shared by the NoteX storage layer."""

_LIKE_ESCAPES = str.maketrans({"\\": "\\\\", "%": "\\%", "_": "\\_"})


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards so user text matches literally.

    Use together with ``escape="\\\\"`` on the ``like`` clause.
    """
    return value.translate(_LIKE_ESCAPES)
