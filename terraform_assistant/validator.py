"""HCL syntax validation for generated templates."""

from __future__ import annotations

import logging
import re

import hcl2
from lark.exceptions import LarkError

logger = logging.getLogger(__name__)

ATTRIBUTE_LINE = re.compile(r"^\s*([A-Za-z_][\w-]*)\s*=(?!=)")
HEREDOC_START = re.compile(r"<<-?\s*([A-Za-z_][\w-]*)\s*$")
QUOTED_STRING = re.compile(r'"(?:[^"\\\n]|\\.)*"')
ESCAPE_SEQUENCE = re.compile(r"\\(.)")
VALID_ESCAPES = frozenset('nrt"\\uU')


class TemplateValidationError(ValueError):
    """Raised when generated text is not valid HCL syntax."""

    def __init__(self, diagnostics: tuple[str, ...]) -> None:
        super().__init__("Invalid Terraform template: " + "; ".join(diagnostics))
        self.diagnostics = diagnostics


def _strip_comment(line: str) -> str:
    in_string = False
    index = 0
    while index < len(line):
        char = line[index]
        if in_string:
            if char == "\\":
                index += 1
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "#" or line.startswith("//", index):
            return line[:index]
        index += 1
    return line


def _body_diagnostics(template: str) -> tuple[str, ...]:
    """Report redefined attributes and bad escapes, which hcl2 accepts silently.

    Works line by line on text that already parsed, so block braces balance.
    Heredoc bodies are skipped.
    """
    diagnostics: list[str] = []
    scopes: list[dict[str, int]] = [{}]
    heredoc_end: str | None = None

    for number, raw_line in enumerate(template.splitlines(), start=1):
        if heredoc_end is not None:
            if raw_line.strip() == heredoc_end:
                heredoc_end = None
            continue

        line = _strip_comment(raw_line)
        for literal in QUOTED_STRING.findall(line):
            for match in ESCAPE_SEQUENCE.finditer(literal[1:-1]):
                if match.group(1) not in VALID_ESCAPES:
                    diagnostics.append(
                        f"Invalid escape sequence '\\{match.group(1)}' at line {number}"
                    )

        code = QUOTED_STRING.sub('""', line)
        attribute = ATTRIBUTE_LINE.match(code)
        if attribute is not None:
            name = attribute.group(1)
            scope = scopes[-1]
            if name in scope:
                diagnostics.append(
                    f"Attribute redefined: '{name}' at line {number} "
                    f"was already set at line {scope[name]}"
                )
            else:
                scope[name] = number

        for char in code:
            if char == "{":
                scopes.append({})
            elif char == "}" and len(scopes) > 1:
                scopes.pop()

        heredoc = HEREDOC_START.search(code)
        if heredoc is not None:
            heredoc_end = heredoc.group(1)

    return tuple(diagnostics)


def collect_diagnostics(template: str) -> tuple[str, ...]:
    """Parse the template and return syntax diagnostics; empty means valid."""
    if not template.strip():
        return ("template is empty",)

    text = template if template.endswith("\n") else f"{template}\n"
    try:
        hcl2.loads(text)
    except (LarkError, ValueError) as error:
        lines = [line.rstrip() for line in str(error).strip().splitlines() if line.strip()]
        return tuple(lines) or (type(error).__name__,)
    return _body_diagnostics(text)


def check_template(template: str) -> None:
    """Reject templates with any syntax diagnostic."""
    diagnostics = collect_diagnostics(template)
    if diagnostics:
        logger.warning("Template failed HCL validation with %d diagnostic(s).", len(diagnostics))
        raise TemplateValidationError(diagnostics)
