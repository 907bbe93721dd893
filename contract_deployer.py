#!/usr/bin/env python3
"""
Superchain Contract Deployer
Deploys a contract (or a hub + spoke pair) to the same address on several
chains by submitting one transaction to a deployment factory. The factory
deploys locally and relays the deployment to the remote chains.

Usage:
- Set PRIVATE_KEY in your environment or .env file
- Run: superchain-deploy deploy deploy.json
       superchain-deploy deploy-hs hubspoke.json
  Omit the config path to be prompted for each field.
"""

import logging
import os
import sys
from typing import List, Optional

import click

# Web3 and blockchain
from eth_account import Account
from eth_utils import to_hex, to_wei
from web3 import Web3
from web3.exceptions import TimeExhausted

from superchain_deployer.errors import (
    ConfigValidationError,
    DeploymentError,
    GasEstimationFailure,
    RpcConnectionError,
    TransactionFailedError,
)
from superchain_deployer.models import (
    CompiledArtifact,
    DeploymentRequest,
    DeploymentResult,
    DeploymentStage,
    GasEstimate,
    HubSpokeDeploymentRequest,
)
from superchain_deployer.services import (
    SOLADY_CREATE3_PROXY_INITCODE_HASH,
    ArtifactLoader,
    FileConfigSource,
    ForgeCompiler,
    InteractiveConfigSource,
    ReceiptVerifier,
    build_init_code,
    compute_create2_address,
    compute_create3_address,
    format_salt,
    salt_to_hex,
)
from superchain_deployer.services.factory import (
    encode_deploy_contract,
    encode_deploy_hub_and_spokes,
)
from superchain_deployer.settings import Settings

# wait_for_transaction_receipt never gives up
WAIT_FOREVER = float('inf')


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> logging.Logger:
    """Setup logging"""
    logger = logging.getLogger('superchain_deployer')
    logger.setLevel(logging.DEBUG)

    # Repeated CLI invocations in one process must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class ContractDeployer:
    """Runs one deterministic deployment through the factory contract"""

    def __init__(self, settings: Settings, w3: Optional[Web3] = None, account=None,
                 compiler: Optional[ForgeCompiler] = None, loader: Optional[ArtifactLoader] = None,
                 skip_compile: bool = False):
        self.settings = settings
        self.w3 = w3
        self.account = account
        self.compiler = compiler or ForgeCompiler(settings.compile_command)
        self.loader = loader or ArtifactLoader(settings.artifacts_dir)
        self.skip_compile = skip_compile
        self.stage = DeploymentStage.IDLE
        self.logger = logging.getLogger('superchain_deployer')

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _setup_web3(self, rpc_url: str):
        """Setup Web3 connection and signing account"""
        self.rpc_url = rpc_url
        if self.w3 is None:
            self.w3 = Web3(Web3.HTTPProvider(rpc_url))
            if not self.w3.is_connected():
                raise RpcConnectionError(f"Failed to connect to RPC at {rpc_url}", rpc_url=rpc_url)

        if self.account is None:
            try:
                self.account = Account.from_key(self.settings.private_key)
            except Exception:
                # Never echo the key itself
                raise ConfigValidationError("PRIVATE_KEY is not a valid private key", field='PRIVATE_KEY')

        self.deployer_address = self.account.address
        self.logger.info(f"Connected to {rpc_url} as {self.deployer_address}")

    def _advance(self, stage: DeploymentStage):
        self.logger.debug(f"Stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def _run(self, step, request):
        self.stage = DeploymentStage.IDLE
        try:
            result = step(request)
        except DeploymentError as e:
            e.stage = self.stage
            self.stage = DeploymentStage.FAILED
            self.logger.info(f"Deployment failed at stage {e.stage.value}: {e}")
            raise
        except Exception:
            failed_at = self.stage
            self.stage = DeploymentStage.FAILED
            self.logger.debug(f"Unexpected failure at stage {failed_at.value}", exc_info=True)
            raise
        self._advance(DeploymentStage.DONE)
        return result

    def _warn(self, message: str):
        print(message, file=sys.stderr)

    # ------------------------------------------------------------------
    # Offline stages
    # ------------------------------------------------------------------

    def _prepare_artifacts(self, contract_names: List[str]) -> List[CompiledArtifact]:
        """Compile once, then load every named artifact"""
        if not self.skip_compile:
            self.compiler.compile()
        artifacts = [self.loader.load(name) for name in contract_names]
        self._advance(DeploymentStage.ARTIFACTS_READY)
        return artifacts

    def _proxy_init_code_hash(self, request: HubSpokeDeploymentRequest) -> bytes:
        return (request.proxy_init_code_hash
                or self.settings.proxy_init_code_hash
                or SOLADY_CREATE3_PROXY_INITCODE_HASH)

    # ------------------------------------------------------------------
    # Chain interaction
    # ------------------------------------------------------------------

    def _estimate_gas(self, to: str, data: bytes, fallback_gas_limit: int) -> GasEstimate:
        """eth_estimateGas, falling back to a fixed limit on any failure"""
        try:
            gas_estimate = self.w3.eth.estimate_gas({
                'from': self.deployer_address,
                'to': to,
                'data': to_hex(data),
            })
            print(f"Estimated gas: {gas_estimate}")
            estimate = GasEstimate(gas_limit=int(gas_estimate), estimated=True)
        except Exception as e:
            self.logger.info(f"Gas estimation failed: {e}")
            self._warn(f"Gas estimation failed, using manual gas limit of {fallback_gas_limit:,}")
            estimate = GasEstimate(
                gas_limit=fallback_gas_limit,
                estimated=False,
                failure=GasEstimationFailure(reason=str(e), fallback_gas_limit=fallback_gas_limit),
            )
        self._advance(DeploymentStage.GAS_ESTIMATED)
        return estimate

    def _fee_parameters(self) -> dict:
        """EIP-1559 fees when the chain reports a base fee, legacy gas price otherwise"""
        latest_block = self.w3.eth.get_block('latest')
        base_fee = latest_block.get('baseFeePerGas')
        if base_fee is None:
            gas_price = self.w3.eth.gas_price
            self.logger.debug(f"Legacy gas price: {gas_price / 1e9:.2f} gwei")
            return {'gasPrice': gas_price}

        max_priority_fee = to_wei(self.settings.max_priority_fee_gwei, 'gwei')
        max_fee_per_gas = int(base_fee * 1.2) + max_priority_fee
        self.logger.debug(f"EIP-1559 Gas: Base fee: {base_fee / 1e9:.2f} gwei, "
                          f"Priority: {max_priority_fee / 1e9:.2f} gwei, Max fee: {max_fee_per_gas / 1e9:.2f} gwei")
        return {
            'maxFeePerGas': max_fee_per_gas,
            'maxPriorityFeePerGas': max_priority_fee,
            'type': 2,
        }

    def _submit(self, to: str, data: bytes, gas: GasEstimate):
        """Sign, send and block until the receipt arrives"""
        try:
            nonce = self.w3.eth.get_transaction_count(self.deployer_address, 'pending')
            chain_id = self.w3.eth.chain_id
            fees = self._fee_parameters()
        except Exception as e:
            raise RpcConnectionError(f"Failed to prepare transaction: {e}", rpc_url=self.rpc_url) from e
        self.logger.debug(f"Nonce: {nonce}")

        tx = {
            'from': self.deployer_address,
            'to': to,
            'data': to_hex(data),
            'value': 0,
            'gas': gas.gas_limit,
            'nonce': nonce,
            'chainId': chain_id,
            **fees,
        }

        try:
            signed_tx = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as e:
            raise TransactionFailedError(f"Transaction rejected: {e}", nonce=nonce) from e
        self._advance(DeploymentStage.SUBMITTED)
        self.logger.info(f"Transaction sent: {to_hex(tx_hash)}, waiting for confirmation")

        timeout = self.settings.receipt_timeout or WAIT_FOREVER
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise TransactionFailedError(
                f"Transaction {to_hex(tx_hash)} not confirmed within {timeout} seconds",
                tx_hash=to_hex(tx_hash),
            ) from e
        except Exception as e:
            raise RpcConnectionError(
                f"Failed to fetch receipt for {to_hex(tx_hash)}: {e}",
                rpc_url=self.rpc_url, tx_hash=to_hex(tx_hash),
            ) from e

        print(f"Transaction hash: {to_hex(receipt['transactionHash'])}")
        print(f"Gas used: {receipt['gasUsed']}")

        if receipt.get('status', 1) == 0:
            raise TransactionFailedError(
                f"Transaction {to_hex(receipt['transactionHash'])} reverted",
                tx_hash=to_hex(receipt['transactionHash']),
            )
        self._advance(DeploymentStage.CONFIRMED)
        return receipt

    def _report_relays(self, verifier: ReceiptVerifier, receipt) -> tuple:
        relayed = verifier.relayed_messages(receipt)
        for chain_id, target_factory in relayed:
            print(f"Cross-chain message sent to chain {chain_id} (factory {target_factory})")
        return tuple(chain_id for chain_id, _ in relayed)

    # ------------------------------------------------------------------
    # Single-bytecode deployment (CREATE2)
    # ------------------------------------------------------------------

    def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        """Deploy one contract to request.chains through deployContract"""
        return self._run(self._deploy, request)

    def _deploy(self, request: DeploymentRequest) -> DeploymentResult:
        artifact, = self._prepare_artifacts([request.contract_name])

        init_code = build_init_code(artifact, request.constructor_args)
        self._advance(DeploymentStage.ARGS_ENCODED)

        formatted_salt = format_salt(request.salt)
        self.logger.debug(f"Formatted salt: {salt_to_hex(formatted_salt)}")
        self._advance(DeploymentStage.SALT_FORMATTED)

        print(f"Target chains: {', '.join(str(chain_id) for chain_id in request.chains)}")

        self._setup_web3(request.rpc_url)
        data = encode_deploy_contract(request.chains, init_code, formatted_salt)
        gas = self._estimate_gas(request.factory_contract, data, self.settings.fallback_gas_limit)

        receipt = self._submit(request.factory_contract, data, gas)

        verifier = ReceiptVerifier(request.factory_contract)
        verification = verifier.verify(receipt, formatted_salt, init_code=init_code)
        self._advance(DeploymentStage.VERIFIED)

        print(f"Deployed contract address on local chain: {verification.observed_address}")
        print(f"Computed CREATE2 address (for all chains): {verification.computed_address}")
        if verification.mismatch:
            self._warn(str(verification.mismatch))

        relayed_chains = self._report_relays(verifier, receipt)
        print("Contract deployment initiated across specified chains.")

        return DeploymentResult(
            tx_hash=to_hex(receipt['transactionHash']),
            gas_used=receipt['gasUsed'],
            gas_limit=gas.gas_limit,
            gas_estimated=gas.estimated,
            deployed_address=verification.observed_address,
            computed_address=verification.computed_address,
            matched=verification.matched,
            local_chain_id=verification.event_chain_id,
            target_chains=request.chains,
            relayed_chains=relayed_chains,
            mismatch=verification.mismatch,
            gas_failure=gas.failure,
        )

    # ------------------------------------------------------------------
    # Hub-and-spoke deployment (CREATE3)
    # ------------------------------------------------------------------

    def deploy_hub_spoke(self, request: HubSpokeDeploymentRequest) -> DeploymentResult:
        """Deploy the hub locally and relay the spoke to request.spoke_chains"""
        return self._run(self._deploy_hub_spoke, request)

    def _deploy_hub_spoke(self, request: HubSpokeDeploymentRequest) -> DeploymentResult:
        hub_artifact, spoke_artifact = self._prepare_artifacts([request.hub_contract, request.spoke_contract])

        hub_init_code = build_init_code(hub_artifact, request.hub_constructor_args)
        spoke_init_code = build_init_code(spoke_artifact, request.spoke_constructor_args)
        self._advance(DeploymentStage.ARGS_ENCODED)

        formatted_salt = format_salt(request.salt)
        self.logger.debug(f"Formatted salt: {salt_to_hex(formatted_salt)}")
        self._advance(DeploymentStage.SALT_FORMATTED)

        print(f"Target spoke chains: {', '.join(str(chain_id) for chain_id in request.spoke_chains)}")

        self._setup_web3(request.rpc_url)
        try:
            local_chain_id = self.w3.eth.chain_id
        except Exception as e:
            raise RpcConnectionError(f"Failed to read chain ID: {e}", rpc_url=self.rpc_url) from e
        warnings = []
        if local_chain_id in request.spoke_chains:
            message = (f"Warning: Local chain {local_chain_id} is also listed as a spoke chain; "
                       f"the hub already occupies the address there")
            self._warn(message)
            warnings.append(message)

        data = encode_deploy_hub_and_spokes(hub_init_code, spoke_init_code, formatted_salt, request.spoke_chains)
        gas = self._estimate_gas(request.factory_contract, data, self.settings.hub_spoke_fallback_gas_limit)

        receipt = self._submit(request.factory_contract, data, gas)

        verifier = ReceiptVerifier(request.factory_contract)
        verification = verifier.verify(
            receipt, formatted_salt, proxy_init_code_hash=self._proxy_init_code_hash(request)
        )
        self._advance(DeploymentStage.VERIFIED)

        print(f"Deployed hub contract address on local chain: {verification.observed_address}")
        print(f"Computed CREATE3 address (used for all chains): {verification.computed_address}")
        if verification.mismatch:
            self._warn(str(verification.mismatch))

        relayed_chains = self._report_relays(verifier, receipt)
        print(f"Hub contract ({request.hub_contract}) deployed on chain ID {local_chain_id}")
        print(f"Spoke contract ({request.spoke_contract}) deployment initiated on chains: "
              f"{list(request.spoke_chains)}")
        print(f"All contracts will be deployed to the same address: {verification.computed_address}")

        return DeploymentResult(
            tx_hash=to_hex(receipt['transactionHash']),
            gas_used=receipt['gasUsed'],
            gas_limit=gas.gas_limit,
            gas_estimated=gas.estimated,
            deployed_address=verification.observed_address,
            computed_address=verification.computed_address,
            matched=verification.matched,
            local_chain_id=local_chain_id,
            target_chains=request.spoke_chains,
            relayed_chains=relayed_chains,
            mismatch=verification.mismatch,
            gas_failure=gas.failure,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def predict(self, request) -> str:
        """Precompute the deployment address without any RPC call or key"""
        return self._run(self._predict, request)

    def _predict(self, request) -> str:
        if isinstance(request, HubSpokeDeploymentRequest):
            hub_artifact, spoke_artifact = self._prepare_artifacts([request.hub_contract, request.spoke_contract])
            build_init_code(hub_artifact, request.hub_constructor_args)
            build_init_code(spoke_artifact, request.spoke_constructor_args)
            self._advance(DeploymentStage.ARGS_ENCODED)
            formatted_salt = format_salt(request.salt)
            self._advance(DeploymentStage.SALT_FORMATTED)
            address = compute_create3_address(
                request.factory_contract, formatted_salt, self._proxy_init_code_hash(request)
            )
            print(f"Computed CREATE3 address (used for all chains): {address}")
        else:
            artifact, = self._prepare_artifacts([request.contract_name])
            init_code = build_init_code(artifact, request.constructor_args)
            self._advance(DeploymentStage.ARGS_ENCODED)
            formatted_salt = format_salt(request.salt)
            self._advance(DeploymentStage.SALT_FORMATTED)
            address = compute_create2_address(request.factory_contract, formatted_salt, init_code)
            print(f"Computed CREATE2 address (for all chains): {address}")

        print("Dry run: no transaction submitted.")
        return address


# ----------------------------------------------------------------------
# CLI
# ----------------------------------------------------------------------

def _run_command(ctx, config_path: Optional[str], load_request, deploy, dry_run: bool, skip_compile: bool):
    """Shared error handling: any failure prints one line and exits 1"""
    logger = logging.getLogger('superchain_deployer')
    try:
        settings = Settings.from_env(require_private_key=not dry_run)
        setup_logging(settings.log_file, ctx.obj.get('verbose', False))

        request = load_request(_config_source(config_path))
        deployer = ContractDeployer(settings, skip_compile=skip_compile)
        if dry_run:
            deployer.predict(request)
        else:
            deploy(deployer, request)
    except DeploymentError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    except click.Abort:
        raise
    except Exception as e:
        logger.debug("Unexpected failure", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)


def _config_source(config_path: Optional[str]):
    """File values first; prompt only for fields the file leaves out"""
    initial = FileConfigSource(config_path).read() if config_path else None
    return InteractiveConfigSource(initial)


@click.group(context_settings=dict(help_option_names=['-h', '--help']))
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging on the console.')
@click.pass_context
def cli(ctx, verbose):
    """Deterministic cross-chain contract deployment through a factory contract."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@cli.command('deploy')
@click.argument('config_path', required=False)
@click.option('--skip-compile', is_flag=True, help='Use existing artifacts instead of running forge build.')
@click.option('--dry-run', is_flag=True, help='Only compute the deployment address.')
@click.pass_context
def deploy_command(ctx, config_path, skip_compile, dry_run):
    """Deploy a contract across multiple chains using the deployment factory."""
    _run_command(
        ctx,
        config_path,
        lambda source: source.load_deploy_request(),
        lambda deployer, request: deployer.deploy(request),
        dry_run,
        skip_compile,
    )


@cli.command('deploy-hs')
@click.argument('config_path', required=False)
@click.option('--skip-compile', is_flag=True, help='Use existing artifacts instead of running forge build.')
@click.option('--dry-run', is_flag=True, help='Only compute the deployment address.')
@click.pass_context
def deploy_hub_spoke_command(ctx, config_path, skip_compile, dry_run):
    """Deploy hub and spoke contracts across multiple chains using the same address."""
    _run_command(
        ctx,
        config_path,
        lambda source: source.load_hub_spoke_request(),
        lambda deployer, request: deployer.deploy_hub_spoke(request),
        dry_run,
        skip_compile,
    )


cli.add_command(deploy_command, 'd')
cli.add_command(deploy_hub_spoke_command, 'hs')


if __name__ == "__main__":
    cli()
