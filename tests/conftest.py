"""Shared fixtures: Solidity sources and contract model builders."""

import pytest

from sollens.parsers.contract_model import (
    ContractKind, ContractModel, Event, ExternalCall, Function, FunctionKind, Modifier, Parameter, Variable,
)

TOKEN_V1 = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import {Ownable} from "@openzeppelin/contracts/access/Ownable.sol";
import "./IERC20.sol";

contract Token is Ownable {
    struct Checkpoint {
        uint256 fromBlock;
        uint256 votes;
    }

    enum Status { Active, Paused }

    mapping(address => uint256) public balances;
    uint256 public totalSupply;
    address private treasury;
    uint256 public constant DECIMALS = 18;

    event Transfer(address indexed from, address indexed to, uint256 value);
    event Approval(address indexed owner, address indexed spender, uint256 value);

    modifier onlyTreasury() {
        require(msg.sender == treasury, "not treasury");
        _;
    }

    constructor(address initialTreasury) {
        treasury = initialTreasury;
    }

    function transfer(address to, uint256 amount) external returns (bool) {
        require(balances[msg.sender] >= amount, "insufficient balance");
        _move(msg.sender, to, amount);
        return true;
    }

    function mint(address to, uint256 amount) public onlyOwner {
        totalSupply += amount;
        balances[to] += amount;
        emit Transfer(address(0), to, amount);
    }

    function sweep(address token) external onlyTreasury {
        IERC20(token).transfer(treasury, 1);
    }

    function balanceOf(address account) public view returns (uint256) {
        return balances[account];
    }

    function _move(address from, address to, uint256 amount) internal {
        balances[from] -= amount;
        balances[to] += amount;
        emit Transfer(from, to, amount);
    }
}
"""

# Drops transfer, the Approval event and the onlyTreasury modifier
TOKEN_V2 = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.24;

import {Ownable} from "@openzeppelin/contracts/access/Ownable.sol";
import "./IERC20.sol";

contract Token is Ownable {
    struct Checkpoint {
        uint256 fromBlock;
        uint256 votes;
    }

    enum Status { Active, Paused }

    mapping(address => uint256) public balances;
    uint256 public totalSupply;
    address private treasury;
    uint256 public constant DECIMALS = 18;

    event Transfer(address indexed from, address indexed to, uint256 value);

    constructor(address initialTreasury) {
        treasury = initialTreasury;
    }

    function mint(address to, uint256 amount) public onlyOwner {
        totalSupply += amount;
        balances[to] += amount;
        emit Transfer(address(0), to, amount);
    }

    function sweep(address token) external {
        IERC20(token).transfer(treasury, 1);
    }

    function balanceOf(address account) public view returns (uint256) {
        return balances[account];
    }

    function _move(address from, address to, uint256 amount) internal {
        balances[from] -= amount;
        balances[to] += amount;
        emit Transfer(from, to, amount);
    }
}
"""

BUNDLE = """pragma solidity ^0.8.0;

library SafeMath {
    function add(uint256 a, uint256 b) internal pure returns (uint256) {
        return a + b;
    }
}

interface IVault {
    function deposit() external payable;
}

abstract contract Base {
    function version() public pure virtual returns (string memory);
}

contract Vault is Base, IVault {
    function deposit() external payable override {}

    function version() public pure override returns (string memory) {
        return "1";
    }

    receive() external payable {}

    fallback() external {}
}
"""

BRANCHY = """pragma solidity ^0.8.0;

contract Branchy {
    uint256 public limit;

    function check(uint256 a, uint256 b) public view returns (uint256) {
        require(a > 0, "a");
        require(b > 0, "b");
        require(a != b, "same");
        if (a > limit && b > limit) {
            return a;
        }
        if (b > a) {
            return b;
        }
        return 0;
    }

    function plain(uint256 a) public pure returns (uint256) {
        return a + 1;
    }
}
"""


@pytest.fixture
def token_v1():
    return TOKEN_V1


@pytest.fixture
def token_v2():
    return TOKEN_V2


@pytest.fixture
def bundle_source():
    return BUNDLE


@pytest.fixture
def branchy_source():
    return BRANCHY


def _params(*specs):
    """Parameters from ``"type name"`` strings; a trailing ``indexed`` word sets the flag."""
    params = []
    for spec in specs:
        words = spec.split()
        indexed = "indexed" in words
        words = [w for w in words if w != "indexed"]
        location = words.pop(1) if len(words) == 3 else None
        params.append(Parameter(name=words[-1] if len(words) > 1 else "", type=words[0],
                                storage_location=location, indexed=indexed))
    return tuple(params)


@pytest.fixture
def make_function():
    def factory(name, visibility="public", mutability="nonpayable", params=(), returns=(), modifiers=(),
                external_calls=(), calls=(), kind=FunctionKind.FUNCTION):
        return Function(
            name=name,
            kind=kind,
            visibility=visibility,
            mutability=mutability,
            parameters=_params(*params),
            returns=_params(*returns),
            modifiers=tuple(modifiers),
            line_start=1,
            line_end=2,
            calls=tuple(calls),
            external_calls=tuple(ExternalCall(*pair) for pair in external_calls),
            complexity=1,
        )
    return factory


@pytest.fixture
def make_event():
    def factory(name, params=(), anonymous=False):
        return Event(name=name, parameters=_params(*params), line_start=1, line_end=1, anonymous=anonymous)
    return factory


@pytest.fixture
def make_variable():
    def factory(name, type="uint256", visibility="internal", constant=False, immutable=False):
        return Variable(name=name, type=type, visibility=visibility, is_constant=constant,
                        is_immutable=immutable, line_start=1, line_end=1)
    return factory


@pytest.fixture
def make_modifier():
    def factory(name, params=()):
        return Modifier(name=name, parameters=_params(*params), line_start=1, line_end=3)
    return factory


@pytest.fixture
def make_model():
    def factory(name="Token", functions=(), events=(), variables=(), modifiers=(), imports=(), inherits=()):
        return ContractModel(
            name=name,
            kind=ContractKind.CONTRACT,
            pragma="^0.8.0",
            imports=tuple(imports),
            inherited_contracts=tuple(inherits),
            functions=tuple(functions),
            events=tuple(events),
            variables=tuple(variables),
            modifiers=tuple(modifiers),
            structs=(),
            enums=(),
            total_lines=10,
            complexity=len(functions),
        )
    return factory
