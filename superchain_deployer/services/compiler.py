"""
Compiler and artifact loading for Foundry projects
"""

import json
import logging
import os
import shlex
import subprocess

from eth_utils import to_bytes

from ..errors import ArtifactNotFoundError, CompilationError
from ..models import CompiledArtifact


class ForgeCompiler:
    """Runs the project's build command with inherited stdio"""

    def __init__(self, command: str = 'forge build', cwd: str = None):
        self.command = command
        self.cwd = cwd
        self.logger = logging.getLogger('superchain_deployer')

    def compile(self):
        print(f"Compiling contract with {self.command}...")
        argv = shlex.split(self.command)
        try:
            subprocess.run(argv, check=True, cwd=self.cwd)
        except FileNotFoundError:
            raise CompilationError(f"Compiler not found: {argv[0]}", command=self.command)
        except subprocess.CalledProcessError as e:
            raise CompilationError(
                f"Compilation failed: '{self.command}' exited with status {e.returncode}",
                command=self.command, returncode=e.returncode,
            )
        self.logger.debug(f"Compilation finished: {self.command}")


class ArtifactLoader:
    """Reads <artifacts_dir>/<Name>.sol/<Name>.json build outputs"""

    def __init__(self, artifacts_dir: str = 'out'):
        self.artifacts_dir = artifacts_dir
        self.logger = logging.getLogger('superchain_deployer')

    def artifact_path(self, contract_name: str) -> str:
        return os.path.join(self.artifacts_dir, f"{contract_name}.sol", f"{contract_name}.json")

    def load(self, contract_name: str) -> CompiledArtifact:
        path = self.artifact_path(contract_name)
        if not os.path.exists(path):
            raise ArtifactNotFoundError(f"Artifact not found at {path}", contract=contract_name, path=path)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ArtifactNotFoundError(f"Artifact at {path} could not be read: {e}",
                                        contract=contract_name, path=path)

        bytecode = data.get('bytecode')
        # Forge nests the creation code under bytecode.object
        if isinstance(bytecode, dict):
            bytecode = bytecode.get('object')
        if not isinstance(bytecode, str) or bytecode in ('', '0x'):
            raise ArtifactNotFoundError(
                f"Artifact at {path} has no creation bytecode (abstract contract or interface?)",
                contract=contract_name, path=path,
            )

        abi = data.get('abi', [])
        if not isinstance(abi, list):
            raise ArtifactNotFoundError(f"Artifact at {path} has a malformed ABI",
                                        contract=contract_name, path=path)

        try:
            code = to_bytes(hexstr=bytecode)
        except ValueError:
            # Unlinked libraries leave __$...$__ placeholders in the hex
            raise ArtifactNotFoundError(f"Artifact at {path} has invalid bytecode (unlinked libraries?)",
                                        contract=contract_name, path=path)

        self.logger.debug(f"Loaded artifact {contract_name} ({len(code)} bytes) from {path}")
        return CompiledArtifact(name=contract_name, abi=abi, bytecode=code, path=path)
