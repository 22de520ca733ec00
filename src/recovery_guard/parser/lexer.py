"""
Solidity Lexer (Tokenizer)

Converts raw .sol source into a stream of tokens.
Handles: identifiers, numbers, strings, comments, punctuation and operators.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional


class TokenType(Enum):
    """Types of tokens in Solidity source."""
    IDENTIFIER = auto()      # withdraw, uint256, msg
    STRING = auto()          # "quoted", 'quoted', hex"00ff", unicode"..."
    NUMBER = auto()          # 42, 0x2a, 1e18, 1_000
    LBRACE = auto()          # {
    RBRACE = auto()          # }
    LPAREN = auto()          # (
    RPAREN = auto()          # )
    LBRACKET = auto()        # [
    RBRACKET = auto()        # ]
    SEMICOLON = auto()       # ;
    COMMA = auto()           # ,
    DOT = auto()             # .
    OPERATOR = auto()        # = == => + - * / % < > ! & | ^ ~ ? : and compounds
    COMMENT = auto()         # // line or /* block */
    EOF = auto()             # End of file


@dataclass
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: str
    line: int
    column: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.column})"


class LexerError(Exception):
    """Error during lexical analysis."""
    def __init__(self, message: str, line: int, column: int):
        self.line = line
        self.column = column
        self.message = message
        super().__init__(f"Lexer error at line {line}, column {column}: {message}")


class Lexer:
    """
    Tokenizer for Solidity source files.

    Usage:
        lexer = Lexer(source_text)
        tokens = list(lexer.tokenize())
    """

    SINGLE_CHARS = {
        '{': TokenType.LBRACE,
        '}': TokenType.RBRACE,
        '(': TokenType.LPAREN,
        ')': TokenType.RPAREN,
        '[': TokenType.LBRACKET,
        ']': TokenType.RBRACKET,
        ';': TokenType.SEMICOLON,
        ',': TokenType.COMMA,
    }

    # Longest first so that '>>>=' wins over '>>'
    OPERATORS = (
        '>>>=', '>>>', '<<=', '>>=', '**',
        '==', '!=', '<=', '>=', '=>', '&&', '||', '++', '--', '<<', '>>',
        '+=', '-=', '*=', '/=', '%=', '|=', '&=', '^=', '->', ':=',
        '=', '<', '>', '!', '+', '-', '*', '/', '%', '&', '|', '^', '~', '?', ':',
    )

    # Prefixes that turn a following string literal into a single token
    STRING_PREFIXES = ('hex', 'unicode')

    @staticmethod
    def _is_ident_start(ch: str) -> bool:
        return ch == '_' or ch == '$' or ch.isalpha()

    @staticmethod
    def _is_ident_cont(ch: str) -> bool:
        return ch == '_' or ch == '$' or ch.isalnum()

    def __init__(self, source: str, filename: str = "<unknown>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)

    def _current(self) -> Optional[str]:
        """Get current character or None if at end."""
        if self.pos >= self.length:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Peek ahead by offset characters."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def _advance(self) -> Optional[str]:
        """Advance one character and return it."""
        ch = self._current()
        if ch is not None:
            self.pos += 1
            if ch == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return ch

    def _skip_whitespace(self) -> None:
        while self._current() is not None and self._current() in ' \t\r\n\f\v':
            self._advance()

    def _read_string(self, quote_char: str) -> str:
        """Read a quoted string, keeping escapes verbatim."""
        start_line = self.line
        start_col = self.column

        self._advance()  # opening quote

        result = []
        while True:
            ch = self._current()
            if ch is None or ch == '\n':
                raise LexerError("Unterminated string", start_line, start_col)
            if ch == quote_char:
                self._advance()
                break
            if ch == '\\':
                result.append(ch)
                self._advance()
                esc = self._current()
                if esc is None:
                    raise LexerError("Unterminated string", start_line, start_col)
                result.append(esc)
                self._advance()
            else:
                result.append(ch)
                self._advance()

        return ''.join(result)

    def _read_identifier(self) -> str:
        result = []
        while True:
            ch = self._current()
            if ch is None or not self._is_ident_cont(ch):
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _read_number(self) -> str:
        """Read a decimal, hex or scientific number literal."""
        result = []
        if self._current() == '0' and self._peek() in ('x', 'X'):
            result.append(self._advance())
            result.append(self._advance())
            while self._current() is not None and (self._current() in '0123456789abcdefABCDEF_'):
                result.append(self._advance())
            return ''.join(result)

        while True:
            ch = self._current()
            if ch is None:
                break
            if ch.isdigit() or ch == '_':
                result.append(self._advance())
            elif ch == '.' and self._peek() is not None and self._peek().isdigit():
                result.append(self._advance())
            elif ch in ('e', 'E') and (
                (self._peek() is not None and self._peek().isdigit())
                or (self._peek() == '-' and self._peek(2) is not None and self._peek(2).isdigit())
            ):
                result.append(self._advance())
                if self._current() == '-':
                    result.append(self._advance())
            else:
                break
        return ''.join(result)

    def _read_line_comment(self) -> str:
        self._advance()
        self._advance()
        result = []
        while True:
            ch = self._current()
            if ch is None or ch == '\n':
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _read_block_comment(self) -> str:
        start_line = self.line
        start_col = self.column
        self._advance()
        self._advance()
        result = []
        while True:
            ch = self._current()
            if ch is None:
                raise LexerError("Unterminated block comment", start_line, start_col)
            if ch == '*' and self._peek() == '/':
                self._advance()
                self._advance()
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _match_operator(self) -> Optional[str]:
        for op in self.OPERATORS:
            if self.source.startswith(op, self.pos):
                return op
        return None

    def tokenize(self, include_comments: bool = False) -> Iterator[Token]:
        """
        Generate tokens from the source.

        Args:
            include_comments: If True, emit COMMENT tokens. Otherwise skip them.
        """
        while True:
            self._skip_whitespace()

            ch = self._current()
            start_line = self.line
            start_col = self.column

            if ch is None:
                yield Token(TokenType.EOF, '', start_line, start_col)
                break

            # Comments
            if ch == '/' and self._peek() == '/':
                comment = self._read_line_comment()
                if include_comments:
                    yield Token(TokenType.COMMENT, comment, start_line, start_col)
                continue

            if ch == '/' and self._peek() == '*':
                comment = self._read_block_comment()
                if include_comments:
                    yield Token(TokenType.COMMENT, comment, start_line, start_col)
                continue

            if ch in ('"', "'"):
                value = self._read_string(ch)
                yield Token(TokenType.STRING, value, start_line, start_col)
                continue

            if ch in self.SINGLE_CHARS:
                self._advance()
                yield Token(self.SINGLE_CHARS[ch], ch, start_line, start_col)
                continue

            if ch.isdigit() or (ch == '.' and self._peek() is not None and self._peek().isdigit()):
                value = self._read_number()
                yield Token(TokenType.NUMBER, value, start_line, start_col)
                continue

            if ch == '.':
                self._advance()
                yield Token(TokenType.DOT, '.', start_line, start_col)
                continue

            if self._is_ident_start(ch):
                value = self._read_identifier()
                # hex"00ff" and unicode"..." are single literals
                if value in self.STRING_PREFIXES and self._current() in ('"', "'"):
                    literal = self._read_string(self._current())
                    yield Token(TokenType.STRING, literal, start_line, start_col)
                else:
                    yield Token(TokenType.IDENTIFIER, value, start_line, start_col)
                continue

            op = self._match_operator()
            if op is not None:
                for _ in op:
                    self._advance()
                yield Token(TokenType.OPERATOR, op, start_line, start_col)
                continue

            raise LexerError(f"Unexpected character {ch!r}", start_line, start_col)

    def tokenize_all(self, include_comments: bool = False) -> List[Token]:
        """Convenience method to get all tokens as a list."""
        return list(self.tokenize(include_comments))
