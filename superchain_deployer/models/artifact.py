"""
Compiled contract artifact model
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class CompiledArtifact:
    """ABI and creation bytecode for one contract, held for a single run"""
    name: str
    abi: List[Dict] = field(repr=False)
    bytecode: bytes = field(repr=False)
    path: Optional[str] = None

    @property
    def constructor(self) -> Optional[Dict]:
        for entry in self.abi:
            if entry.get('type') == 'constructor':
                return entry
        return None
