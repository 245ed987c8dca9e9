"""Contract ABIs shipped as package data (`abis/*.json`)."""

import json
import os
from functools import lru_cache
from typing import Any, Dict, List

ABI_DIR = os.path.join(os.path.dirname(__file__), "abis")


@lru_cache(maxsize=None)
def _read_artifact(filename: str) -> Dict[str, Any]:
    path = os.path.join(ABI_DIR, filename)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"ABI {filename} is not packaged under {ABI_DIR}")


def load_abi(name: str) -> List[Dict[str, Any]]:
    """
    ABI entries for `name` ("ERC20" or "ERC20.json"). Accepts either a bare
    ABI list or a build artifact with an "abi" key.
    """
    filename = name if name.endswith(".json") else f"{name}.json"
    artifact = _read_artifact(filename)
    if isinstance(artifact, dict):
        return list(artifact["abi"])
    return list(artifact)
