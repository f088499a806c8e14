import re
from typing import Mapping

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render_template(body: str, variables: Mapping[str, object]) -> str:
    """Substitute ``{{name}}`` placeholders with values from ``variables``.

    Placeholders without a value are left untouched so a malformed template is
    visible in what gets sent. Values are inserted as-is, without escaping.
    """

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables or variables[name] is None:
            return match.group(0)
        return str(variables[name])

    return PLACEHOLDER.sub(substitute, body)
