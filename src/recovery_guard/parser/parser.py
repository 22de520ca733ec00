"""
Solidity Declaration Parser

Converts a token stream from the lexer into an Abstract Syntax Tree (AST)
of source-unit and contract-level declarations. Function and modifier
bodies are checked for statement structure (terminating semicolons,
no dangling operators) but their statements are not modelled.
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional, Dict, Any
from enum import Enum, auto

from recovery_guard.parser.lexer import Lexer, Token, TokenType, LexerError


class NodeType(Enum):
    """Types of AST nodes."""
    SOURCE_UNIT = auto()                 # Top-level container
    PRAGMA_DIRECTIVE = auto()            # pragma solidity ^0.5.8;
    IMPORT_DIRECTIVE = auto()            # import "./Foo.sol";
    CONTRACT_DEFINITION = auto()         # contract / interface / library
    FUNCTION_DEFINITION = auto()         # function, constructor, fallback, receive
    MODIFIER_INVOCATION = auto()         # stoppable, auth, onlyOwner(x)
    MODIFIER_DEFINITION = auto()         # modifier stoppable { ... }
    EVENT_DEFINITION = auto()            # event Foo(uint256 x);
    STRUCT_DEFINITION = auto()           # struct Foo { ... }
    ENUM_DEFINITION = auto()             # enum Foo { A, B }
    USING_FOR_DECLARATION = auto()       # using SafeMath for uint256;
    STATE_VARIABLE_DECLARATION = auto()  # uint256 public total;
    DECLARATION = auto()                 # error Foo(); type Price is uint128;


VISIBILITY_KEYWORDS = frozenset({"public", "external", "internal", "private"})
MUTABILITY_KEYWORDS = frozenset({"pure", "view", "payable", "constant", "nonpayable"})
STATE_VARIABLE_SPECIFIERS = frozenset({"public", "internal", "private", "constant", "immutable", "override"})
POSTFIX_OPERATORS = frozenset({"++", "--"})

OPENERS = {TokenType.LPAREN: TokenType.RPAREN, TokenType.LBRACKET: TokenType.RBRACKET, TokenType.LBRACE: TokenType.RBRACE}
CLOSERS = {v: k for k, v in OPENERS.items()}
CLOSER_CHARS = {TokenType.RPAREN: ')', TokenType.RBRACKET: ']', TokenType.RBRACE: '}'}


@dataclass
class ASTNode:
    """Base class for AST nodes."""
    node_type: NodeType = None  # Set by subclasses in __post_init__
    line: int = 0
    column: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {'_type': self.node_type.name.lower() if self.node_type else None}
        for f in fields(self):
            if f.name == 'node_type':
                continue
            result[f.name] = _to_plain(getattr(self, f.name))
        return result


def _to_plain(value):
    if isinstance(value, ASTNode):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


@dataclass
class PragmaDirective(ASTNode):
    name: str = ""
    value: str = ""

    def __post_init__(self):
        self.node_type = NodeType.PRAGMA_DIRECTIVE

    def __repr__(self):
        return f"Pragma({self.name} {self.value})"


@dataclass
class ImportDirective(ASTNode):
    path: str = ""

    def __post_init__(self):
        self.node_type = NodeType.IMPORT_DIRECTIVE

    def __repr__(self):
        return f"Import({self.path!r})"


@dataclass
class ModifierInvocation(ASTNode):
    """A modifier applied in a function header."""
    name: str = ""
    arguments: Optional[str] = None  # raw text between the parentheses

    def __post_init__(self):
        self.node_type = NodeType.MODIFIER_INVOCATION

    def __repr__(self):
        if self.arguments is None:
            return f"Modifier({self.name})"
        return f"Modifier({self.name}({self.arguments}))"


@dataclass
class FunctionDefinition(ASTNode):
    """
    A function, constructor, fallback or receive function.

    ``visibility`` and ``state_mutability`` are normalised: an omitted
    visibility reads as ``public`` and an omitted mutability as
    ``nonpayable``; the legacy ``constant`` keyword reads as ``view``.
    The keywords actually written are kept in the ``explicit_*`` fields.
    """
    name: str = ""
    kind: str = "function"  # 'function', 'constructor', 'fallback', 'receive'
    parameters: str = ""
    return_parameters: Optional[str] = None
    visibility: str = "public"
    explicit_visibility: Optional[str] = None
    state_mutability: str = "nonpayable"
    explicit_mutability: Optional[str] = None
    modifiers: List[ModifierInvocation] = field(default_factory=list)
    is_virtual: bool = False
    overrides: Optional[List[str]] = None
    has_body: bool = True

    def __post_init__(self):
        self.node_type = NodeType.FUNCTION_DEFINITION

    def __repr__(self):
        label = self.name or f"<{self.kind}>"
        return f"Function({label}, {self.visibility}, {self.state_mutability}, {self.modifier_names})"

    @property
    def modifier_names(self) -> List[str]:
        return [m.name for m in self.modifiers]


@dataclass
class ModifierDefinition(ASTNode):
    name: str = ""
    parameters: Optional[str] = None
    is_virtual: bool = False

    def __post_init__(self):
        self.node_type = NodeType.MODIFIER_DEFINITION

    def __repr__(self):
        return f"ModifierDef({self.name})"


@dataclass
class EventDefinition(ASTNode):
    name: str = ""
    parameters: str = ""
    is_anonymous: bool = False

    def __post_init__(self):
        self.node_type = NodeType.EVENT_DEFINITION

    def __repr__(self):
        return f"Event({self.name})"


@dataclass
class StructDefinition(ASTNode):
    name: str = ""
    members: str = ""

    def __post_init__(self):
        self.node_type = NodeType.STRUCT_DEFINITION

    def __repr__(self):
        return f"Struct({self.name})"


@dataclass
class EnumDefinition(ASTNode):
    name: str = ""
    values: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.node_type = NodeType.ENUM_DEFINITION

    def __repr__(self):
        return f"Enum({self.name}, {self.values})"


@dataclass
class UsingForDeclaration(ASTNode):
    library: str = ""
    type_name: str = ""

    def __post_init__(self):
        self.node_type = NodeType.USING_FOR_DECLARATION

    def __repr__(self):
        return f"Using({self.library} for {self.type_name})"


@dataclass
class StateVariableDeclaration(ASTNode):
    name: str = ""
    type_name: str = ""
    visibility: Optional[str] = None
    is_constant: bool = False
    is_immutable: bool = False

    def __post_init__(self):
        self.node_type = NodeType.STATE_VARIABLE_DECLARATION

    def __repr__(self):
        return f"StateVar({self.type_name} {self.name})"


@dataclass
class Declaration(ASTNode):
    """Any other ';'-terminated declaration (error, user-defined value type)."""
    keyword: str = ""
    name: str = ""
    text: str = ""

    def __post_init__(self):
        self.node_type = NodeType.DECLARATION

    def __repr__(self):
        return f"Declaration({self.keyword} {self.name})"


@dataclass
class ContractDefinition(ASTNode):
    """A contract, interface or library and its body declarations."""
    name: str = ""
    kind: str = "contract"  # 'contract', 'interface', 'library'
    is_abstract: bool = False
    base_contracts: List[str] = field(default_factory=list)
    sub_nodes: List[ASTNode] = field(default_factory=list)

    def __post_init__(self):
        self.node_type = NodeType.CONTRACT_DEFINITION

    def __repr__(self):
        return f"Contract({self.kind} {self.name}, {len(self.sub_nodes)} sub-nodes)"

    def get_functions(self) -> List[FunctionDefinition]:
        """All function definitions in declaration order."""
        return [n for n in self.sub_nodes if n.node_type == NodeType.FUNCTION_DEFINITION]

    def get_function(self, name: str) -> Optional[FunctionDefinition]:
        for fn in self.get_functions():
            if fn.name == name:
                return fn
        return None


@dataclass
class RootNode(ASTNode):
    """Root of the AST, contains all top-level definitions."""
    children: List[ASTNode] = field(default_factory=list)
    filename: str = "<unknown>"

    def __post_init__(self):
        self.node_type = NodeType.SOURCE_UNIT

    def __repr__(self):
        return f"RootNode({self.filename}, {len(self.children)} children)"

    def get_contracts(self, kind: str = None) -> List[ContractDefinition]:
        """Get all top-level contract definitions, optionally filtered by kind."""
        contracts = [c for c in self.children if c.node_type == NodeType.CONTRACT_DEFINITION]
        if kind:
            contracts = [c for c in contracts if c.kind == kind]
        return contracts

    def get_contract(self, name: str) -> Optional[ContractDefinition]:
        for contract in self.get_contracts():
            if contract.name == name:
                return contract
        return None


class ParseError(Exception):
    """Error during parsing."""
    def __init__(self, message: str, token: Token = None, line: int = None, column: int = None):
        self.token = token
        self.line = line or (token.line if token else 0)
        self.column = column or (token.column if token else 0)
        self.message = message
        if token:
            super().__init__(f"Parse error at line {token.line}, column {token.column}: {message}")
        elif line:
            super().__init__(f"Parse error at line {line}, column {column or 0}: {message}")
        else:
            super().__init__(f"Parse error: {message}")


@dataclass
class ParseDiagnostic:
    """A diagnostic message from parsing (error or warning)."""
    line: int
    column: int
    end_line: int
    end_column: int
    severity: str  # "error", "warning"
    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
            "severity": self.severity,
            "code": self.code,
            "message": self.message
        }

    def __str__(self):
        return f"{self.line}:{self.column} {self.severity} {self.code}: {self.message}"


@dataclass
class ParseResult:
    """Result of parsing with error recovery."""
    ast: Optional[RootNode]
    diagnostics: List[ParseDiagnostic]
    success: bool

    @property
    def errors(self) -> List[ParseDiagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]

    @property
    def warnings(self) -> List[ParseDiagnostic]:
        return [d for d in self.diagnostics if d.severity == "warning"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "ast": self.ast.to_dict() if self.ast else None,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


class Parser:
    """
    Parser for Solidity source units.

    Usage:
        parser = Parser(tokens)
        ast = parser.parse()
    """

    def __init__(self, tokens: List[Token], filename: str = "<unknown>"):
        self.tokens = [t for t in tokens if t.type != TokenType.COMMENT]
        self.filename = filename
        self.pos = 0
        self.length = len(self.tokens)

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _current(self) -> Optional[Token]:
        """Get current token or None if at end."""
        if self.pos >= self.length:
            return None
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Optional[Token]:
        """Peek ahead by offset tokens."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.tokens[pos]

    def _advance(self) -> Optional[Token]:
        """Advance one token and return the previous one."""
        token = self._current()
        if token is not None:
            self.pos += 1
        return token

    def _at_end(self) -> bool:
        token = self._current()
        return token is None or token.type == TokenType.EOF

    def _check(self, token_type: TokenType, value: str = None) -> bool:
        token = self._current()
        if token is None or token.type != token_type:
            return False
        return value is None or token.value == value

    def _check_keyword(self, value: str) -> bool:
        return self._check(TokenType.IDENTIFIER, value)

    def _expect(self, token_type: TokenType, message: str = None) -> Token:
        """Expect a specific token type, raise error if not found."""
        token = self._current()
        if token is None or token.type == TokenType.EOF:
            raise ParseError(message or f"Expected {token_type.name}, got end of file", token)
        if token.type != token_type:
            raise ParseError(
                message or f"Expected {token_type.name}, got {token.type.name} {token.value!r}",
                token
            )
        return self._advance()

    def _expect_identifier(self, what: str) -> Token:
        return self._expect(TokenType.IDENTIFIER, f"Expected {what}")

    def _skip_balanced(self) -> str:
        """
        Consume a bracketed group starting at the current opener and return
        the raw text between the outer brackets. Nested brackets of every
        kind must match.
        """
        opener = self._current()
        if opener is None or opener.type not in OPENERS:
            raise ParseError("Expected an opening bracket", opener)
        self._advance()

        stack = [opener]
        parts = []
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                expected = CLOSER_CHARS[OPENERS[stack[-1].type]]
                raise ParseError(
                    f"Unexpected end of file, missing closing '{expected}' "
                    f"for '{stack[-1].value}' at line {stack[-1].line}",
                    token
                )
            self._advance()
            if token.type in OPENERS:
                stack.append(token)
            elif token.type in CLOSERS:
                if CLOSERS[token.type] != stack[-1].type:
                    raise ParseError(
                        f"Mismatched '{token.value}', expected '{CLOSER_CHARS[OPENERS[stack[-1].type]]}'",
                        token
                    )
                stack.pop()
                if not stack:
                    break
            parts.append(token.value)
        return " ".join(parts)

    def _collect_statement(self) -> List[Token]:
        """
        Consume tokens up to and including the next ';' outside brackets.
        Returns the tokens before the ';'.
        """
        start = self._current()
        collected = []
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError("Expected ';', got end of file", start)
            if token.type == TokenType.SEMICOLON:
                self._advance()
                return collected
            if token.type == TokenType.RBRACE:
                raise ParseError("Expected ';'", token)
            if token.type in OPENERS:
                depth_start = self.pos
                self._skip_balanced()
                collected.extend(self.tokens[depth_start:self.pos])
                continue
            collected.append(self._advance())

    def _skip_block(self) -> None:
        """
        Consume a '{...}' statement block, checking its statement structure.

        Simple statements must end in ';' and must not end on a dangling
        operator. Nested blocks are checked the same way. Inline assembly
        is skipped as a balanced group.
        """
        self._expect(TokenType.LBRACE, "Expected '{'")
        pending: List[Token] = []
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError("Unexpected end of file, missing closing '}'", token)

            if token.type == TokenType.RBRACE:
                if pending:
                    raise ParseError(f"Expected ';' after {pending[-1].value!r}", token)
                self._advance()
                return
            if token.type == TokenType.LBRACE:
                self._skip_block()
                pending = []
                continue
            if token.type == TokenType.SEMICOLON:
                last = pending[-1] if pending else None
                if last is not None and last.type == TokenType.OPERATOR and last.value not in POSTFIX_OPERATORS:
                    raise ParseError(f"Expected expression after {last.value!r}", token)
                self._advance()
                pending = []
                continue

            if not pending and token.type == TokenType.IDENTIFIER and token.value == 'assembly':
                self._advance()
                # dialect string and flags: assembly "evm-assembly" ("memory-safe") { ... }
                while not self._check(TokenType.LBRACE):
                    if self._at_end():
                        raise ParseError("Expected '{' after assembly", self._current())
                    if self._check(TokenType.LPAREN):
                        self._skip_balanced()
                    else:
                        self._advance()
                self._skip_balanced()
                continue

            if token.type in OPENERS:
                self._skip_balanced()
                pending.append(self.tokens[self.pos - 1])
                continue
            if token.type in CLOSERS:
                raise ParseError(f"Unexpected {token.value!r}", token)
            pending.append(self._advance())

    # ------------------------------------------------------------------
    # Tolerance hooks (strict parser raises)
    # ------------------------------------------------------------------

    def _unrecognized_directive(self, start: Token, tokens: List[Token]) -> None:
        raise ParseError(f"Unrecognized top-level statement starting with {start.value!r}", start)

    def _stray_semicolon(self, token: Token) -> None:
        raise ParseError("Unexpected ';'", token)

    def _duplicate_specifier(self, token: Token, previous: str) -> None:
        raise ParseError(f"Duplicate specifier {token.value!r} (already {previous!r})", token)

    # ------------------------------------------------------------------
    # Source unit
    # ------------------------------------------------------------------

    def parse(self) -> RootNode:
        """Parse the token stream into an AST."""
        root = RootNode(filename=self.filename, line=1, column=1)

        while not self._at_end():
            node = self._parse_source_element()
            if node:
                root.children.append(node)

        return root

    def _parse_source_element(self) -> Optional[ASTNode]:
        token = self._current()

        if token.type == TokenType.SEMICOLON:
            self._advance()
            self._stray_semicolon(token)
            return None

        if token.type != TokenType.IDENTIFIER:
            raise ParseError(f"Unexpected {token.value!r} at top level", token)

        keyword = token.value
        if keyword == 'pragma':
            return self._parse_pragma()
        if keyword == 'import':
            return self._parse_import()
        if keyword in ('contract', 'interface', 'library'):
            return self._parse_contract()
        if keyword == 'abstract' and self._peek() and self._peek().value == 'contract':
            return self._parse_contract()
        if keyword == 'function':
            return self._parse_function()
        if keyword == 'struct':
            return self._parse_struct()
        if keyword == 'enum':
            return self._parse_enum()
        if keyword == 'event':
            return self._parse_event()
        if keyword == 'using':
            return self._parse_using()
        if keyword in ('error', 'type'):
            return self._parse_declaration()

        # File-level constants are the only other valid top-level statement
        tokens = self._collect_statement()
        if any(t.type == TokenType.IDENTIFIER and t.value == 'constant' for t in tokens):
            return self._state_variable_from_tokens(token, tokens)
        self._unrecognized_directive(token, tokens)
        return None

    def _parse_pragma(self) -> PragmaDirective:
        start = self._advance()
        name = self._expect_identifier("pragma name")
        tokens = self._collect_statement()
        return PragmaDirective(
            name=name.value,
            value="".join(t.value for t in tokens),
            line=start.line,
            column=start.column
        )

    def _parse_import(self) -> ImportDirective:
        start = self._advance()
        tokens = self._collect_statement()
        strings = [t.value for t in tokens if t.type == TokenType.STRING]
        if not strings:
            raise ParseError("Expected import path", start)
        return ImportDirective(path=strings[0], line=start.line, column=start.column)

    def _parse_declaration(self) -> Declaration:
        start = self._advance()
        name = self._expect_identifier(f"{start.value} name")
        tokens = self._collect_statement()
        return Declaration(
            keyword=start.value,
            name=name.value,
            text=" ".join(t.value for t in tokens),
            line=start.line,
            column=start.column
        )

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def _parse_contract(self) -> ContractDefinition:
        start = self._current()
        is_abstract = False
        if self._check_keyword('abstract'):
            is_abstract = True
            self._advance()
        kind = self._advance().value
        name = self._expect_identifier(f"{kind} name")

        contract = ContractDefinition(
            name=name.value,
            kind=kind,
            is_abstract=is_abstract,
            line=start.line,
            column=start.column
        )

        if self._check_keyword('is'):
            self._advance()
            while True:
                base = [self._expect_identifier("base contract name").value]
                while self._check(TokenType.DOT):
                    self._advance()
                    base.append(self._expect_identifier("base contract name").value)
                contract.base_contracts.append(".".join(base))
                if self._check(TokenType.LPAREN):
                    self._skip_balanced()
                if self._check(TokenType.COMMA):
                    self._advance()
                    continue
                break

        self._expect(TokenType.LBRACE, f"Expected '{{' to open {kind} {name.value}")
        self._parse_contract_body(contract)
        return contract

    def _parse_contract_body(self, contract: ContractDefinition) -> None:
        """Parse contract parts up to and including the closing brace."""
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError(f"Unexpected end of file in {contract.kind} {contract.name} (missing closing '}}')", token)
            if token.type == TokenType.RBRACE:
                self._advance()
                return
            node = self._parse_contract_part()
            if node:
                contract.sub_nodes.append(node)

    def _parse_contract_part(self) -> Optional[ASTNode]:
        token = self._current()

        if token.type == TokenType.SEMICOLON:
            self._advance()
            self._stray_semicolon(token)
            return None

        if token.type != TokenType.IDENTIFIER:
            raise ParseError(f"Unexpected {token.value!r} in contract body", token)

        keyword = token.value
        next_is_paren = self._peek() is not None and self._peek().type == TokenType.LPAREN

        if keyword == 'function':
            return self._parse_function()
        if keyword in ('constructor', 'fallback', 'receive') and next_is_paren:
            return self._parse_function(kind=keyword)
        if keyword == 'modifier':
            return self._parse_modifier_definition()
        if keyword == 'event':
            return self._parse_event()
        if keyword == 'struct':
            return self._parse_struct()
        if keyword == 'enum':
            return self._parse_enum()
        if keyword == 'using':
            return self._parse_using()
        if keyword in ('error', 'type') and self._peek() and self._peek().type == TokenType.IDENTIFIER:
            return self._parse_declaration()

        tokens = self._collect_statement()
        return self._state_variable_from_tokens(token, tokens)

    # ------------------------------------------------------------------
    # Functions and modifiers
    # ------------------------------------------------------------------

    def _parse_function(self, kind: str = 'function') -> FunctionDefinition:
        start = self._advance()
        name = ""
        if kind == 'function' and self._check(TokenType.IDENTIFIER):
            name = self._advance().value

        if not self._check(TokenType.LPAREN):
            raise ParseError(f"Expected '(' after function {name or start.value}", self._current())
        fn = FunctionDefinition(
            name=name,
            kind=kind if name or kind != 'function' else 'fallback',
            parameters=self._skip_balanced(),
            line=start.line,
            column=start.column
        )

        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError(f"Unexpected end of file in header of function {name or kind}", token)

            if token.type == TokenType.LBRACE:
                self._skip_block()
                fn.has_body = True
                break
            if token.type == TokenType.SEMICOLON:
                self._advance()
                fn.has_body = False
                break
            if token.type != TokenType.IDENTIFIER:
                raise ParseError(f"Unexpected {token.value!r} in header of function {name or kind}", token)

            word = token.value
            if word in VISIBILITY_KEYWORDS:
                self._advance()
                if fn.explicit_visibility is not None:
                    self._duplicate_specifier(token, fn.explicit_visibility)
                    continue
                fn.explicit_visibility = word
            elif word in MUTABILITY_KEYWORDS:
                self._advance()
                if fn.explicit_mutability is not None:
                    self._duplicate_specifier(token, fn.explicit_mutability)
                    continue
                fn.explicit_mutability = word
            elif word == 'virtual':
                self._advance()
                fn.is_virtual = True
            elif word == 'override':
                self._advance()
                fn.overrides = []
                if self._check(TokenType.LPAREN):
                    inner = self._skip_balanced()
                    fn.overrides = [p.strip() for p in inner.split(",") if p.strip()]
            elif word == 'returns':
                self._advance()
                if not self._check(TokenType.LPAREN):
                    raise ParseError("Expected '(' after returns", self._current())
                fn.return_parameters = self._skip_balanced()
            else:
                fn.modifiers.append(self._parse_modifier_invocation())

        if fn.explicit_visibility:
            fn.visibility = fn.explicit_visibility
        # Pre-0.5 'constant' reads as view, so such functions are exempt
        if fn.explicit_mutability == 'constant':
            fn.state_mutability = 'view'
        elif fn.explicit_mutability:
            fn.state_mutability = fn.explicit_mutability
        return fn

    def _parse_modifier_invocation(self) -> ModifierInvocation:
        start = self._advance()
        parts = [start.value]
        while self._check(TokenType.DOT):
            self._advance()
            parts.append(self._expect_identifier("modifier name").value)
        invocation = ModifierInvocation(name=".".join(parts), line=start.line, column=start.column)
        if self._check(TokenType.LPAREN):
            invocation.arguments = self._skip_balanced()
        return invocation

    def _parse_modifier_definition(self) -> ModifierDefinition:
        start = self._advance()
        name = self._expect_identifier("modifier name")
        modifier = ModifierDefinition(name=name.value, line=start.line, column=start.column)
        if self._check(TokenType.LPAREN):
            modifier.parameters = self._skip_balanced()

        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError(f"Unexpected end of file in modifier {name.value}", token)
            if token.type == TokenType.LBRACE:
                self._skip_block()
                break
            if token.type == TokenType.SEMICOLON:
                self._advance()
                break
            if self._check_keyword('virtual'):
                self._advance()
                modifier.is_virtual = True
            elif self._check_keyword('override'):
                self._advance()
                if self._check(TokenType.LPAREN):
                    self._skip_balanced()
            else:
                raise ParseError(f"Unexpected {token.value!r} in modifier {name.value}", token)
        return modifier

    # ------------------------------------------------------------------
    # Other declarations
    # ------------------------------------------------------------------

    def _parse_event(self) -> EventDefinition:
        start = self._advance()
        name = self._expect_identifier("event name")
        if not self._check(TokenType.LPAREN):
            raise ParseError(f"Expected '(' after event {name.value}", self._current())
        event = EventDefinition(
            name=name.value,
            parameters=self._skip_balanced(),
            line=start.line,
            column=start.column
        )
        if self._check_keyword('anonymous'):
            self._advance()
            event.is_anonymous = True
        self._expect(TokenType.SEMICOLON, f"Expected ';' after event {name.value}")
        return event

    def _parse_struct(self) -> StructDefinition:
        start = self._advance()
        name = self._expect_identifier("struct name")
        if not self._check(TokenType.LBRACE):
            raise ParseError(f"Expected '{{' after struct {name.value}", self._current())
        return StructDefinition(
            name=name.value,
            members=self._skip_balanced(),
            line=start.line,
            column=start.column
        )

    def _parse_enum(self) -> EnumDefinition:
        start = self._advance()
        name = self._expect_identifier("enum name")
        if not self._check(TokenType.LBRACE):
            raise ParseError(f"Expected '{{' after enum {name.value}", self._current())
        inner = self._skip_balanced()
        values = [v.strip() for v in inner.split(",") if v.strip()]
        return EnumDefinition(name=name.value, values=values, line=start.line, column=start.column)

    def _parse_using(self) -> UsingForDeclaration:
        start = self._advance()
        tokens = self._collect_statement()
        words = [t.value for t in tokens]
        if 'for' not in words:
            raise ParseError("Expected 'for' in using declaration", start)
        split = words.index('for')
        return UsingForDeclaration(
            library=" ".join(words[:split]),
            type_name=" ".join(words[split + 1:]),
            line=start.line,
            column=start.column
        )

    def _state_variable_from_tokens(self, start: Token, tokens: List[Token]) -> StateVariableDeclaration:
        """
        Build a state variable from the tokens of a ';'-terminated statement.

        Shape: type, specifiers, name, then optionally '=' and a non-empty
        initializer that does not end on an operator.
        """
        i = 0

        def at(index: int) -> Optional[Token]:
            return tokens[index] if index < len(tokens) else None

        def fail(index: int, message: str) -> ParseError:
            token = at(index) or (tokens[-1] if tokens else start)
            return ParseError(message, token)

        # Type name: mapping(...), a.b.C, address payable, any number of [..]
        first = at(i)
        if first is None or first.type != TokenType.IDENTIFIER:
            raise fail(i, f"Unexpected {start.value!r}")
        i += 1
        if first.value == 'mapping':
            if at(i) is None or at(i).type != TokenType.LPAREN:
                raise fail(i, "Expected '(' after mapping")
            i = _past_group(tokens, i)
        else:
            while at(i) is not None and at(i).type == TokenType.DOT:
                if at(i + 1) is None or at(i + 1).type != TokenType.IDENTIFIER:
                    raise fail(i + 1, "Expected type name after '.'")
                i += 2
            if first.value == 'address' and at(i) is not None and at(i).value == 'payable':
                i += 1
        while at(i) is not None and at(i).type == TokenType.LBRACKET:
            i = _past_group(tokens, i)
        type_name = _join_type(tokens[:i])

        words = set()
        while at(i) is not None and at(i).type == TokenType.IDENTIFIER and at(i).value in STATE_VARIABLE_SPECIFIERS:
            words.add(at(i).value)
            i += 1
            if tokens[i - 1].value == 'override' and at(i) is not None and at(i).type == TokenType.LPAREN:
                i = _past_group(tokens, i)

        name = at(i)
        if name is None or name.type != TokenType.IDENTIFIER:
            raise fail(i, f"Expected variable name in declaration starting with {start.value!r}")
        i += 1

        following = at(i)
        if following is not None:
            if following.type != TokenType.OPERATOR or following.value != '=':
                raise fail(i, f"Unexpected {following.value!r} after variable {name.value}")
            initializer = tokens[i + 1:]
            if not initializer:
                raise fail(i, f"Expected initializer for {name.value}")
            last = initializer[-1]
            if last.type == TokenType.OPERATOR and last.value not in POSTFIX_OPERATORS:
                raise fail(len(tokens) - 1, f"Expected expression after {last.value!r}")

        visibility = next((w for w in ('public', 'internal', 'private') if w in words), None)
        return StateVariableDeclaration(
            name=name.value,
            type_name=type_name,
            visibility=visibility,
            is_constant='constant' in words,
            is_immutable='immutable' in words,
            line=start.line,
            column=start.column
        )


def _join_type(tokens: List[Token]) -> str:
    """Source text of a type name, e.g. "mapping(bytes32=>Record)" or "address payable"."""
    parts = []
    previous = None
    for token in tokens:
        if previous is not None and previous.type == TokenType.IDENTIFIER and token.type == TokenType.IDENTIFIER:
            parts.append(" ")
        parts.append(token.value)
        previous = token
    return "".join(parts)


def _past_group(tokens: List[Token], index: int) -> int:
    """Index just past the bracket group opened at tokens[index]."""
    depth = 0
    for i in range(index, len(tokens)):
        if tokens[i].type in OPENERS:
            depth += 1
        elif tokens[i].type in CLOSERS:
            depth -= 1
            if depth == 0:
                return i + 1
    return len(tokens)


class RecoveringParser(Parser):
    """
    Tolerant parser that keeps going after problems.

    Benign anomalies (unrecognized top-level directives, stray semicolons,
    repeated header specifiers) are recorded as warnings and skipped.
    Structural problems are recorded as errors, the parser skips to the
    next statement and continues so that every problem is reported.
    """

    MAX_ERRORS = 100  # Prevent infinite error loops

    def __init__(self, tokens: List[Token], filename: str = "<unknown>"):
        super().__init__(tokens, filename)
        self.diagnostics: List[ParseDiagnostic] = []
        self.error_count = 0

    def _add_diagnostic(self, message: str, token: Token = None, code: str = "PARSE_ERROR", severity: str = "error"):
        """Record a diagnostic without raising."""
        if severity == "error":
            self.error_count += 1
        line = token.line if token else 0
        column = token.column if token else 0
        end_column = column + len(token.value) if token else column

        self.diagnostics.append(ParseDiagnostic(
            line=line,
            column=column,
            end_line=line,
            end_column=end_column,
            severity=severity,
            code=code,
            message=message
        ))

    def _unrecognized_directive(self, start: Token, tokens: List[Token]) -> None:
        self._add_diagnostic(
            f"Ignoring unrecognized directive {' '.join(t.value for t in tokens)!r}",
            start, "UNRECOGNIZED_DIRECTIVE", "warning"
        )

    def _stray_semicolon(self, token: Token) -> None:
        self._add_diagnostic("Ignoring stray ';'", token, "STRAY_SEMICOLON", "warning")

    def _duplicate_specifier(self, token: Token, previous: str) -> None:
        self._add_diagnostic(
            f"Ignoring duplicate specifier {token.value!r} (keeping {previous!r})",
            token, "DUPLICATE_SPECIFIER", "warning"
        )

    def _skip_to_next_statement(self) -> None:
        """Skip to what looks like the start of a new statement."""
        start = self.pos
        depth = 0
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                break
            if token.type == TokenType.SEMICOLON and depth == 0:
                self._advance()
                break
            if token.type == TokenType.LBRACE:
                depth += 1
            elif token.type == TokenType.RBRACE:
                if depth == 0:
                    # Closes the enclosing scope - let the caller handle it
                    break
                depth -= 1
                if depth == 0:
                    self._advance()
                    break
            self._advance()

        if self.pos == start and not self._at_end() and self._current().type != TokenType.RBRACE:
            self._advance()

    def parse(self) -> RootNode:
        """Parse with error recovery, collecting all diagnostics."""
        root = RootNode(filename=self.filename, line=1, column=1)

        while self.error_count < self.MAX_ERRORS:
            if self._at_end():
                break
            start = self.pos
            try:
                node = self._parse_source_element()
                if node:
                    root.children.append(node)
            except ParseError as e:
                self._add_diagnostic(e.message, e.token)
                self._skip_to_next_statement()
                if self.pos == start:
                    self._advance()

        if self.error_count >= self.MAX_ERRORS:
            self._add_diagnostic(f"Too many errors ({self.MAX_ERRORS}+), stopping", code="TOO_MANY_ERRORS")

        return root

    def _parse_contract_body(self, contract: ContractDefinition) -> None:
        """Parse contract parts with error recovery."""
        while self.error_count < self.MAX_ERRORS:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                self._add_diagnostic(
                    f"Unexpected end of file in {contract.kind} {contract.name} (missing closing '}}')",
                    token, "UNCLOSED_BLOCK"
                )
                return
            if token.type == TokenType.RBRACE:
                self._advance()
                return
            try:
                node = self._parse_contract_part()
                if node:
                    contract.sub_nodes.append(node)
            except ParseError as e:
                self._add_diagnostic(e.message, e.token)
                self._skip_to_next_statement()


def parse_source(source: str, filename: str = "<unknown>") -> RootNode:
    """Parse source code string into AST, raising on the first problem."""
    lexer = Lexer(source, filename)
    tokens = lexer.tokenize_all()
    parser = Parser(tokens, filename)
    return parser.parse()


def parse_source_recovering(source: str, filename: str = "<unknown>") -> ParseResult:
    """
    Parse source with error recovery, collecting all diagnostics.

    Unlike parse_source(), this continues parsing after problems and
    returns a ParseResult with both the (partial) AST and all diagnostics.
    Warnings do not affect ``success``; any error does.

    Args:
        source: Source code string
        filename: For error messages

    Returns:
        ParseResult with ast, diagnostics, and success flag
    """
    try:
        lexer = Lexer(source, filename)
        tokens = lexer.tokenize_all()
    except LexerError as e:
        return ParseResult(
            ast=None,
            diagnostics=[ParseDiagnostic(
                line=e.line,
                column=e.column,
                end_line=e.line,
                end_column=e.column + 1,
                severity="error",
                code="LEXER_ERROR",
                message=e.message
            )],
            success=False
        )

    parser = RecoveringParser(tokens, filename)
    ast = parser.parse()

    return ParseResult(
        ast=ast,
        diagnostics=parser.diagnostics,
        success=not any(d.severity == "error" for d in parser.diagnostics)
    )
