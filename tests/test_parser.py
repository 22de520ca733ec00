"""
Tests for the recovery_guard parser module.
"""

import pytest
from recovery_guard.parser import (
    parse_source,
    parse_source_recovering,
    ParseError,
    NodeType,
    ContractDefinition,
    FunctionDefinition,
    PragmaDirective,
    ImportDirective,
)

from conftest import contract_of, function_of


class TestSourceUnit:
    """Test top-level declarations."""

    def test_empty_source(self):
        ast = parse_source("")
        assert ast.children == []

    def test_pragmas(self):
        ast = parse_source("pragma solidity >=0.5.8;\npragma experimental ABIEncoderV2;")
        assert all(isinstance(c, PragmaDirective) for c in ast.children)
        assert [(c.name, c.value) for c in ast.children] == [
            ("solidity", ">=0.5.8"),
            ("experimental", "ABIEncoderV2"),
        ]

    def test_imports(self):
        ast = parse_source('import "./ColonyStorage.sol";\nimport {IColony} from "./IColony.sol";')
        assert all(isinstance(c, ImportDirective) for c in ast.children)
        assert [c.path for c in ast.children] == ["./ColonyStorage.sol", "./IColony.sol"]

    def test_contract_kinds(self):
        source = """
        interface IRecovery { function enterRecoveryMode() external; }
        library SafeMath { function add(uint a, uint b) internal pure returns (uint) { return a + b; } }
        abstract contract Base { function f() public virtual; }
        contract Colony is Base, IRecovery { }
        """
        contracts = parse_source(source).get_contracts()
        assert [(c.kind, c.name) for c in contracts] == [
            ("interface", "IRecovery"),
            ("library", "SafeMath"),
            ("contract", "Base"),
            ("contract", "Colony"),
        ]
        assert contracts[2].is_abstract
        assert contracts[3].base_contracts == ["Base", "IRecovery"]

    def test_base_constructor_arguments(self):
        contract = contract_of("contract Token is ERC20(\"CLNY\", 18), DSAuth { }")
        assert contract.base_contracts == ["ERC20", "DSAuth"]

    def test_file_level_constant(self):
        ast = parse_source("uint256 constant WAD = 10 ** 18;\ncontract A {}")
        assert ast.children[0].node_type == NodeType.STATE_VARIABLE_DECLARATION
        assert ast.children[0].name == "WAD"
        assert ast.children[0].is_constant

    def test_free_function_and_error(self):
        ast = parse_source("error Unauthorized(address caller);\nfunction helper(uint x) pure returns (uint) { return x; }")
        assert ast.children[0].node_type == NodeType.DECLARATION
        assert ast.children[0].keyword == "error"
        assert isinstance(ast.children[1], FunctionDefinition)


class TestContractBody:
    """Test contract-level declarations."""

    SOURCE = """
    contract ColonyFunding is ColonyStorage {
      using SafeMath for uint256;

      enum FundingPotAssociatedType { Unassigned, Domain, Task, Payment }

      struct FundingPot {
        mapping (address => uint256) balance;
        FundingPotAssociatedType associatedType;
      }

      event ColonyFundsMovedBetweenFundingPots(uint256 indexed fromPot, uint256 indexed toPot, uint256 amount, address token);
      event Anon(uint x) anonymous;

      uint256 constant MAX_PAYOUT = 2**254;
      mapping (uint256 => FundingPot) public fundingPots;

      modifier onlyDomain(uint256 _id) { require(_id > 0); _; }

      constructor() public { }

      function moveFundsBetweenPots(uint256 _fromPot, uint256 _toPot, uint256 _amount, address _token) public stoppable onlyDomain(_fromPot) {
        fundingPots[_fromPot].balance[_token] = fundingPots[_fromPot].balance[_token].sub(_amount);
      }
    }
    """

    def test_sub_node_kinds(self):
        contract = contract_of(self.SOURCE)
        assert [n.node_type for n in contract.sub_nodes] == [
            NodeType.USING_FOR_DECLARATION,
            NodeType.ENUM_DEFINITION,
            NodeType.STRUCT_DEFINITION,
            NodeType.EVENT_DEFINITION,
            NodeType.EVENT_DEFINITION,
            NodeType.STATE_VARIABLE_DECLARATION,
            NodeType.STATE_VARIABLE_DECLARATION,
            NodeType.MODIFIER_DEFINITION,
            NodeType.FUNCTION_DEFINITION,
            NodeType.FUNCTION_DEFINITION,
        ]

    def test_declaration_details(self):
        nodes = contract_of(self.SOURCE).sub_nodes
        using, enum, struct, event, anon, const, mapping, modifier = nodes[:8]
        assert (using.library, using.type_name) == ("SafeMath", "uint256")
        assert enum.values == ["Unassigned", "Domain", "Task", "Payment"]
        assert struct.name == "FundingPot"
        assert event.name == "ColonyFundsMovedBetweenFundingPots" and not event.is_anonymous
        assert anon.is_anonymous
        assert const.name == "MAX_PAYOUT" and const.is_constant
        assert mapping.name == "fundingPots" and mapping.visibility == "public"
        assert modifier.name == "onlyDomain"

    def test_constructor_is_unnamed(self):
        fn = contract_of(self.SOURCE).get_functions()[0]
        assert fn.kind == "constructor"
        assert fn.name == ""

    def test_function_header(self):
        fn = contract_of(self.SOURCE).get_function("moveFundsBetweenPots")
        assert fn.visibility == "public"
        assert fn.state_mutability == "nonpayable"
        assert fn.modifier_names == ["stoppable", "onlyDomain"]
        assert fn.modifiers[1].arguments == "_fromPot"
        assert fn.has_body


class TestFunctionHeaders:
    """Test visibility, mutability and modifier extraction."""

    def test_view_with_returns(self):
        fn = function_of("function balanceOf() public view returns (uint) { return 1; }", "balanceOf")
        assert (fn.visibility, fn.state_mutability) == ("public", "view")
        assert fn.return_parameters == "uint"
        assert fn.modifiers == []

    def test_defaults_when_omitted(self):
        fn = function_of("function withdraw() { }", "withdraw")
        assert fn.visibility == "public"
        assert fn.explicit_visibility is None
        assert fn.state_mutability == "nonpayable"
        assert fn.explicit_mutability is None

    def test_constant_reads_as_view(self):
        fn = function_of("function total() public constant returns (uint) { }", "total")
        assert fn.state_mutability == "view"
        assert fn.explicit_mutability == "constant"

    def test_payable_external(self):
        fn = function_of("function deposit() external payable recovery { }", "deposit")
        assert (fn.visibility, fn.state_mutability) == ("external", "payable")
        assert fn.modifier_names == ["recovery"]

    def test_modifiers_in_any_position(self):
        fn = function_of("function f(uint a) auth public stoppable returns (bool ok) { }", "f")
        assert fn.modifier_names == ["auth", "stoppable"]

    def test_virtual_and_override(self):
        fn = function_of("function f() public virtual override(A, B) stoppable { }", "f")
        assert fn.is_virtual
        assert fn.overrides == ["A", "B"]
        assert fn.modifier_names == ["stoppable"]

    def test_declaration_without_body(self):
        fn = function_of("function f() external;", "f")
        assert not fn.has_body

    def test_unnamed_fallback(self):
        contract = contract_of("contract C { function() external payable { } }")
        fn = contract.get_functions()[0]
        assert fn.name == ""
        assert fn.kind == "fallback"

    @pytest.mark.parametrize("kind", ["fallback", "receive"])
    def test_fallback_and_receive_keywords(self, kind):
        contract = contract_of(f"contract C {{ {kind}() external payable {{ }} }}")
        fn = contract.get_functions()[0]
        assert (fn.name, fn.kind) == ("", kind)

    def test_nested_body_braces(self):
        source = """
        function f() public stoppable {
          if (a) { for (uint i; i < 2; i++) { x[i] = y; } } else { assembly { sstore(0, 1) } }
        }
        function g() public { }
        """
        contract = contract_of(f"contract C {{ {source} }}")
        assert [f.name for f in contract.get_functions()] == ["f", "g"]


class TestStrictErrors:
    """The strict parser raises on the first problem."""

    def test_missing_closing_brace(self):
        with pytest.raises(ParseError, match="missing closing"):
            parse_source("contract A { function f() public { }")

    def test_mismatched_brackets(self):
        with pytest.raises(ParseError, match="Mismatched"):
            parse_source("contract A { function f() public { g(1 } }")

    def test_unexpected_token_in_header(self):
        with pytest.raises(ParseError) as exc:
            parse_source("contract A {\n  function f() public = { }\n}")
        assert exc.value.line == 2

    def test_unrecognized_directive(self):
        with pytest.raises(ParseError, match="Unrecognized"):
            parse_source("solium disable;\ncontract A {}")

    def test_missing_semicolon_in_body(self):
        with pytest.raises(ParseError, match="Expected ';'") as exc:
            parse_source("contract A {\n  function f() public {\n    balance = 0\n  }\n}")
        assert exc.value.line == 4

    def test_dangling_operator_in_body(self):
        with pytest.raises(ParseError, match="Expected expression after '='"):
            parse_source("contract A { function f() public { balance = ; } }")

    def test_missing_semicolon_in_nested_block(self):
        with pytest.raises(ParseError, match="Expected ';'"):
            parse_source("contract A { function f() public { if (a) { b = 1 } } }")

    def test_modifier_body_checked(self):
        with pytest.raises(ParseError, match="Expected ';'"):
            parse_source("contract A { modifier m { require(x); _ } }")

    @pytest.mark.parametrize("declaration, message", [
        ("uint x = ;", "Expected initializer"),
        ("uint x = 1 +;", "Expected expression after '\\+'"),
        ("foo bar baz qux;", "Unexpected 'baz'"),
        ("uint;", "Expected variable name"),
        ("mapping uint x;", "Expected '\\(' after mapping"),
    ])
    def test_malformed_state_variable(self, declaration, message):
        with pytest.raises(ParseError, match=message):
            parse_source(f"contract A {{ {declaration} }}")


class TestStateVariables:

    @pytest.mark.parametrize("declaration, name, type_name, visibility", [
        ("uint256 total;", "total", "uint256", None),
        ("address payable public owner = address(0);", "owner", "address payable", "public"),
        ("mapping (bytes32 => Record) internal records;", "records", "mapping(bytes32=>Record)", "internal"),
        ("IColony.Role[] private roles;", "roles", "IColony.Role[]", "private"),
        ("uint256[2][] grid;", "grid", "uint256[2][]", None),
        ("uint256 public override(Base) supply;", "supply", "uint256", "public"),
    ])
    def test_declaration_shapes(self, declaration, name, type_name, visibility):
        var = contract_of(f"contract A {{ {declaration} }}").sub_nodes[0]
        assert (var.name, var.type_name, var.visibility) == (name, type_name, visibility)

    def test_immutable(self):
        var = contract_of("contract A { address immutable token = msg.sender; }").sub_nodes[0]
        assert var.is_immutable and not var.is_constant


class TestBodies:
    """Bodies are checked for statement structure but not modelled."""

    @pytest.mark.parametrize("body", [
        "x[i]++; counter--;",
        "return a > b ? a : b;",
        "do { i++; } while (i < 10);",
        "unchecked { total += 1; }",
        "try t.f() returns (uint v) { x = v; } catch { revert(); }",
        "assembly { let x := mload(0x40) sstore(0, x) }",
        'assembly "evm-assembly" ("memory-safe") { mstore(0, 1) }',
        "Payment memory p = Payment({recipient: a, finalized: false});",
        "{ uint scoped = 1; }",
        "",
    ])
    def test_well_formed(self, body):
        fn = function_of(f"function f() public stoppable {{ {body} }}", "f")
        assert fn.has_body

    def test_unbalanced_in_assembly(self):
        with pytest.raises(ParseError, match="Mismatched"):
            parse_source("contract A { function f() public { assembly { sstore(0, 1 } } }")


class TestRecoveringParser:
    """Tolerant parsing: quirks are warnings, structure problems are errors."""

    def test_clean_source(self):
        result = parse_source_recovering("pragma solidity ^0.5.8;\ncontract A { function f() public stoppable {} }")
        assert result.success
        assert result.diagnostics == []
        assert result.ast.get_contract("A") is not None

    def test_unrecognized_directive_is_warning(self):
        result = parse_source_recovering("solium disable;\ncontract A { function f() public {} }")
        assert result.success
        assert [d.code for d in result.warnings] == ["UNRECOGNIZED_DIRECTIVE"]
        assert result.ast.get_contract("A").get_function("f") is not None

    def test_stray_semicolon_is_warning(self):
        result = parse_source_recovering("contract A { ; function f() public {} };")
        assert result.success
        assert [d.code for d in result.warnings] == ["STRAY_SEMICOLON", "STRAY_SEMICOLON"]

    def test_duplicate_specifier_is_warning(self):
        result = parse_source_recovering("contract A { function f() public public view {} }")
        assert result.success
        fn = result.ast.get_contract("A").get_function("f")
        assert fn.visibility == "public"
        assert [d.code for d in result.warnings] == ["DUPLICATE_SPECIFIER"]

    def test_malformed_body_is_error(self):
        result = parse_source_recovering("contract A {\n  function f() public { ( }\n  function g() public {}\n}")
        assert not result.success
        assert result.errors[0].line == 2

    def test_errors_collected_after_recovery(self):
        source = "contract A {\n  function f() public = {}\n  function g() public stoppable {}\n  uint x\n}"
        result = parse_source_recovering(source)
        assert not result.success
        assert len(result.errors) == 2
        assert result.ast.get_contract("A").get_function("g") is not None

    def test_unclosed_contract(self):
        result = parse_source_recovering("contract A { function f() public {}")
        assert not result.success
        assert result.errors[-1].code == "UNCLOSED_BLOCK"

    def test_lexer_error(self):
        result = parse_source_recovering('contract A { string s = "abc; }')
        assert not result.success
        assert result.ast is None
        assert result.errors[0].code == "LEXER_ERROR"


class TestSerialization:

    def test_to_dict(self):
        ast = parse_source("contract A { function f() public stoppable {} }")
        d = ast.to_dict()
        assert d["_type"] == "source_unit"
        contract = d["children"][0]
        assert contract["_type"] == "contract_definition"
        fn = contract["sub_nodes"][0]
        assert fn["name"] == "f"
        assert fn["modifiers"][0]["name"] == "stoppable"


class TestFixtures:

    def test_colony_fixture(self, fixtures_dir):
        ast = parse_source((fixtures_dir / "contracts" / "Colony.sol").read_text(encoding="utf-8"))
        colony = ast.get_contract("Colony")
        assert isinstance(colony, ContractDefinition)
        names = [f.name for f in colony.get_functions()]
        assert "setArchitectureRole" in names
        assert names[-1] == ""
        assert colony.get_function("setArchitectureRole").modifier_names == ["stoppable", "authDomain"]
