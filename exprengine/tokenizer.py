"""
Tokenizer for the expression engine
Turns a sanitized expression string into a flat list of tokens
"""

import re
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional

from exprengine.config import get_settings
from exprengine.exceptions import LexError

logger = logging.getLogger(__name__)


class TokenKind(Enum):
    NUMBER = auto()
    IDENTIFIER = auto()
    OPERATOR = auto()
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    COMMA = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int

    def __repr__(self):
        return f"Token({self.kind.name}, {self.text!r}, pos={self.position})"


# Ordered: multi-character operators must win over their one-character prefixes.
# Numeric-looking runs are taken whole (e.g. "1.2.3", "1e") so the parser can
# report them with context instead of failing here.
_TOKEN_SPEC = [
    (TokenKind.OPERATOR, r"<=|>=|==|!=|\*\*"),
    (TokenKind.NUMBER, r"(?:\d|\.\d)[\d.]*(?:[eE][+-]?\d*)?"),
    (TokenKind.IDENTIFIER, r"[A-Za-z_][A-Za-z0-9_]*"),
    (TokenKind.OPERATOR, r"[+\-*/^=<>]"),
    (TokenKind.LEFT_PAREN, r"\("),
    (TokenKind.RIGHT_PAREN, r"\)"),
    (TokenKind.COMMA, r","),
]

_MASTER_RE = re.compile(
    "|".join(f"(?P<T{i}>{pattern})" for i, (_, pattern) in enumerate(_TOKEN_SPEC)),
    re.ASCII,
)

_WHITESPACE_RE = re.compile(r"\s+")


def tokenize(source: str, max_tokens: Optional[int] = None) -> List[Token]:
    """
    Convert a sanitized expression into a list of Tokens

    Args:
        source: Expression text (normally the validator's sanitized output)
        max_tokens: Hard ceiling on the number of tokens (defaults to settings)

    Returns:
        List of tokens in source order (no end-of-input sentinel)

    Raises:
        LexError: On an unrecognized character or too many tokens
    """
    if max_tokens is None:
        max_tokens = get_settings().max_tokens

    tokens: List[Token] = []
    pos = 0
    length = len(source)

    while pos < length:
        m = _WHITESPACE_RE.match(source, pos)
        if m:
            pos = m.end()
            continue

        m = _MASTER_RE.match(source, pos)
        if not m:
            raise LexError(
                f"Unexpected character: {source[pos]!r}",
                expression=source,
                position=pos,
            )

        if len(tokens) >= max_tokens:
            raise LexError(
                f"Expression has more than {max_tokens} tokens",
                expression=source,
                position=pos,
                details={"max_tokens": max_tokens},
            )

        kind = _TOKEN_SPEC[int(m.lastgroup[1:])][0]
        tokens.append(Token(kind, m.group(0), pos))
        pos = m.end()

    logger.debug(f"Tokenized expression into {len(tokens)} tokens")
    return tokens
