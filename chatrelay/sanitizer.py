"""
Clean up model output before it is shown to the user and logged.

Two cleaners are available and picked by name through `get_cleaner`:

extract_code
    keep only the first fenced code block of the answer, scrubbed of
    pseudo-tags and emphasis markers. Answers without a block pass through.

strip_noise
    keep the whole answer but drop pseudo-tags, emphasis markers and the
    "Here is the code:" style lead-ins models like to add.

Both are total: any string goes in, a string comes out, and text that
matches none of the patterns comes back untouched.
"""
import re
from typing import Callable, Dict, Optional

FENCE = "```"

PSEUDO_TAG = re.compile(r"</?\w+>")
# *word* but not **word**, a lone "*" bullet or "a * b"
SINGLE_EMPHASIS = re.compile(r"(?<![*\w])\*(?![\s*])([^*\n]*?[^\s*])\*(?![*\w])")
DOUBLE_EMPHASIS = re.compile(r"\*\*(?!\s)([^\n]*?\S)\*\*")
LANGUAGE_TAG = re.compile(r"[\w+#.-]*")

BOILERPLATE_PHRASES = (
    "Here is the code",
    "Here's the code",
    "Here is the corrected code",
    "Here's the corrected code",
    "Here is the Java code",
    "Here's the Java code",
    "Here is the Python code",
    "Here's the Python code",
    "Here is the JavaScript code",
    "Here's the JavaScript code",
)
BOILERPLATE = re.compile(
    r"^[ \t]*(?:" + "|".join(re.escape(phrase) for phrase in BOILERPLATE_PHRASES) + r")[ \t]*[:.]?[ \t]*(?:\r?\n)?",
    re.IGNORECASE | re.MULTILINE,
)


def strip_pseudo_tags(text: str) -> str:
    return PSEUDO_TAG.sub("", text)


def strip_emphasis(text: str, double: bool = False) -> str:
    if double:
        text = DOUBLE_EMPHASIS.sub(r"\1", text)
    return SINGLE_EMPHASIS.sub(r"\1", text)


def extract_code(source: Optional[str], delimiter: str = FENCE) -> str:
    if source is None:
        return ""

    # an opening and a closing fence split the text into at least three parts,
    # the first code block always sits at index 1
    parts = source.split(delimiter)
    if len(parts) < 3:
        return source

    block = parts[1]
    first_newline = block.find("\n")
    if first_newline == -1:
        return source

    language = block[:first_newline].strip()
    if not LANGUAGE_TAG.fullmatch(language):
        return source

    code = block[first_newline + 1 :]
    code = strip_emphasis(strip_pseudo_tags(code))
    code = code.strip("\n")
    return f"{delimiter}{language}\n{code}\n{delimiter}"


def strip_noise(source: Optional[str]) -> str:
    if source is None:
        return ""

    text = strip_pseudo_tags(source)
    text = strip_emphasis(text, double=True)
    return BOILERPLATE.sub("", text)


CLEANERS: Dict[str, Callable[[Optional[str]], str]] = {
    "extract_code": extract_code,
    "strip_noise": strip_noise,
}


def get_cleaner(name: str) -> Callable[[Optional[str]], str]:
    try:
        return CLEANERS[name]
    except KeyError:
        raise ValueError(f"unknown response cleaner {name!r}, expected one of {sorted(CLEANERS)}")
