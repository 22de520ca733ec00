"""
recovery_guard.parser - Solidity declaration parser

Lexer and parser for Solidity source units.
Converts .sol files into an Abstract Syntax Tree (AST) of contracts,
functions and their header metadata.
"""

from recovery_guard.parser.lexer import Lexer, Token, TokenType, LexerError
from recovery_guard.parser.parser import (
    Parser,
    RecoveringParser,
    ParseError,
    ParseDiagnostic,
    ParseResult,
    parse_source,
    parse_source_recovering,
    # AST Node types
    ASTNode,
    NodeType,
    RootNode,
    PragmaDirective,
    ImportDirective,
    ContractDefinition,
    FunctionDefinition,
    ModifierInvocation,
    ModifierDefinition,
    EventDefinition,
    StructDefinition,
    EnumDefinition,
    UsingForDeclaration,
    StateVariableDeclaration,
    Declaration,
)

__all__ = [
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "LexerError",
    # Parser
    "Parser",
    "RecoveringParser",
    "ParseError",
    "ParseDiagnostic",
    "ParseResult",
    "parse_source",
    "parse_source_recovering",
    # AST Nodes
    "ASTNode",
    "NodeType",
    "RootNode",
    "PragmaDirective",
    "ImportDirective",
    "ContractDefinition",
    "FunctionDefinition",
    "ModifierInvocation",
    "ModifierDefinition",
    "EventDefinition",
    "StructDefinition",
    "EnumDefinition",
    "UsingForDeclaration",
    "StateVariableDeclaration",
    "Declaration",
]
