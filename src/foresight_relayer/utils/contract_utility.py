import json
from functools import lru_cache
from pathlib import Path
from typing import Any


class ContractUtility:
    """
    Utility for loading the contract ABIs shipped with the relayer.

    ABIs live as ``<ContractName>.json`` artifacts with an ``abi`` key in the
    package's ``contracts`` folder.
    """

    CONTRACTS_DIR: Path = Path(__file__).parent.parent / "contracts"

    def __init__(self, contracts_dir: Path | None = None) -> None:
        """
        Initialize the ContractUtility.

        Args:
            contracts_dir: Folder holding the contract artifacts (defaults to the bundled one)
        """
        self.contracts_dir = (contracts_dir or self.CONTRACTS_DIR).resolve()

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        return _load_abi(self.contracts_dir / f"{contract_name}.json")


@lru_cache(maxsize=None)
def _load_abi(contract_path: Path) -> list[dict[str, Any]]:
    with contract_path.open() as file:
        contract_data: dict[str, Any] = json.load(file)

    return contract_data["abi"]
