"""
LLM Emulator Template Patterns

Compiles {{var}} templates into matchers and renders templates from variables.

Supports:
- Rendering: "Hello {{name}}" + {"name": "Tim"} -> "Hello Tim"
- Strict extraction: literal tokens separated by one-or-more whitespace
- Loose extraction: tolerates up to 12 noise characters before each gap
- Reusable compiled matchers with configurable spacing/case/trim options
"""

import re
from typing import Callable, Dict, List, Optional, Tuple

PLACEHOLDER = re.compile(r'\{\{([a-zA-Z0-9_]+)\}\}')

STRICT_SPACE = r'\s+'
LOOSE_SPACE = r'\S{0,12}\s+'

# Trailing sentence punctuation is tried away first during loose extraction
_TRAILING_PUNCT = re.compile(r'[.?!]+$')


class TemplateError(ValueError):
    """Raised for malformed templates (e.g. duplicate placeholder names)."""


def template_variables(pattern: str) -> List[str]:
    """Placeholder names in order of appearance (duplicates kept)."""
    return PLACEHOLDER.findall(pattern or '')


def validate_template(pattern: str) -> List[str]:
    """
    Return the placeholder names of a template, rejecting duplicates.

    Raises:
        TemplateError: If a placeholder name appears more than once
    """
    names = template_variables(pattern)
    seen = set()
    for name in names:
        if name in seen:
            raise TemplateError(f"Duplicate placeholder '{{{{{name}}}}}' in pattern: {pattern!r}")
        seen.add(name)
    return names


def render_template(template: str, variables: Optional[Dict[str, object]]) -> str:
    """
    Replace every {{name}} with variables[name], or '' when absent.

    No escaping and no recursion: rendered values are never re-expanded.
    """
    variables = variables or {}

    def replacer(match):
        value = variables.get(match.group(1))
        return '' if value is None else str(value)

    return PLACEHOLDER.sub(replacer, template)


def _build_regex(pattern: str, space: str) -> Tuple[str, List[str]]:
    """
    Translate a template into a regex body.

    Placeholders become minimal-width groups. Python group names must be
    identifiers, so groups are numbered (v0, v1, ...) and mapped back.

    Returns:
        Tuple of (regex body, placeholder names by group index)
    """
    body = []
    names = []
    position = 0

    for match in PLACEHOLDER.finditer(pattern):
        body.append(_literal(pattern[position:match.start()], space))
        body.append(f'(?P<v{len(names)}>.+?)')
        names.append(match.group(1))
        position = match.end()
    body.append(_literal(pattern[position:], space))

    return ''.join(body), names


def _literal(text: str, space: str) -> str:
    """Escape literal template text, turning whitespace runs into `space`."""
    parts = re.split(r'(\s+)', text)
    return ''.join(space if part.isspace() else re.escape(part) for part in parts if part)


def _groups(match: 're.Match', names: List[str], trim: bool) -> Dict[str, str]:
    result = {}
    for index, name in enumerate(names):
        value = match.group(f'v{index}')
        result[name] = value.strip() if trim else value
    return result


def match_template_loosely(text: str, pattern: str) -> Optional[Dict[str, str]]:
    """
    Match text against a template, strict first and then loose.

    Unlike extract_vars_loosely, distinguishes "no match" (None) from
    "matched without placeholders" ({}).

    Args:
        text: Input text
        pattern: {{var}} template

    Returns:
        Extracted variables, or None if neither regex matches
    """
    stripped = (text or '').strip()
    candidates = [stripped]
    without_punct = _TRAILING_PUNCT.sub('', stripped)
    if without_punct != stripped:
        candidates.insert(0, without_punct)

    for space in (STRICT_SPACE, LOOSE_SPACE):
        body, names = _build_regex(pattern, space)
        regex = re.compile(f'^{body}$', re.IGNORECASE)
        for candidate in candidates:
            match = regex.match(candidate)
            if match:
                return _groups(match, names, trim=True)

    return None


def extract_vars_loosely(text: str, pattern: str) -> Dict[str, str]:
    """
    Extract {{var}} values from text, strict first and then loose.

    Returns:
        Named captures, or {} if neither regex matches
    """
    return match_template_loosely(text, pattern) or {}


def compile_template_regex(
    pattern: str,
    loose_spaces: bool = True,
    case_insensitive: bool = True,
    trim_vars: bool = True
) -> Callable[[str], Optional[Dict[str, str]]]:
    """
    Compile a {{var}} template into a reusable matcher.

    The regex is anchored to the full input (surrounding whitespace allowed).

    Args:
        pattern: {{var}} template
        loose_spaces: Whitespace runs in the template match any whitespace
            run in the input (otherwise exactly one space)
        case_insensitive: Ignore case for literal text
        trim_vars: Strip whitespace from captured values

    Returns:
        Function mapping input text to extracted variables, or None when the
        input does not match

    Example:
        matcher = compile_template_regex("explain {{topic}} simply")
        matcher("  explain   monads   simply ")  # {'topic': 'monads'}
    """
    space = STRICT_SPACE if loose_spaces else ' '
    body, names = _build_regex(pattern, space)
    flags = re.IGNORECASE if case_insensitive else 0
    regex = re.compile(rf'^\s*{body}\s*$', flags)

    def matcher(text: str) -> Optional[Dict[str, str]]:
        match = regex.match(text or '')
        if not match:
            return None
        return _groups(match, names, trim=trim_vars)

    return matcher
