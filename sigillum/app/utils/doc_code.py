"""
Public document code generation.

A doc_code is 12 symbols drawn independently and uniformly from an
alphabet without visually ambiguous characters (no I, O, 0 or 1), using
the operating system's CSPRNG. Codes are not sequential and carry no
timestamp. Collisions are improbable but possible; the registry's unique
constraint is the backstop.
"""

import re
import secrets

DOC_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DOC_CODE_LENGTH = 12

_DOC_CODE_RE = re.compile(
    rf"[{DOC_CODE_ALPHABET}]{{{DOC_CODE_LENGTH}}}"
)


def generate_doc_code() -> str:
    return "".join(
        secrets.choice(DOC_CODE_ALPHABET) for _ in range(DOC_CODE_LENGTH)
    )


def is_valid_doc_code(code: str) -> bool:
    return bool(_DOC_CODE_RE.fullmatch(code))
