from unittest.mock import MagicMock, PropertyMock

import pytest
from eth_abi import decode as abi_decode
from eth_utils import function_signature_to_4byte_selector, to_hex
from web3.exceptions import TimeExhausted

from contract_deployer import WAIT_FOREVER, ContractDeployer
from superchain_deployer.errors import (
    ArtifactNotFoundError,
    ConstructorArgsError,
    EventNotFoundError,
    RpcConnectionError,
    TransactionFailedError,
)
from superchain_deployer.models import DeploymentRequest, DeploymentStage, HubSpokeDeploymentRequest
from superchain_deployer.services.addresses import compute_create2_address, compute_create3_address
from superchain_deployer.services.compiler import ArtifactLoader
from superchain_deployer.services.factory import DEPLOY_CONTRACT_SIGNATURE, DEPLOY_HUB_AND_SPOKES_SIGNATURE
from superchain_deployer.services.init_code import build_init_code
from superchain_deployer.services.salt import format_salt

from conftest import (
    CONSTRUCTOR_ABI,
    DEPLOYER,
    FACTORY,
    SPOKE_BYTECODE,
    TX_HASH,
    deployed_log,
    make_receipt,
    relay_log,
    write_artifact,
)

OTHER = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"


def deploy_request(**overrides):
    fields = dict(
        chains=(10, 8453),
        contract_name="Counter",
        salt="mysalt",
        rpc_url="http://127.0.0.1:8545",
        factory_contract=FACTORY,
        constructor_args=(42, DEPLOYER),
    )
    fields.update(overrides)
    return DeploymentRequest(**fields)


def hub_spoke_request(**overrides):
    fields = dict(
        spoke_chains=(8453, 34443),
        hub_contract="Hub",
        spoke_contract="Spoke",
        salt="hubsalt",
        rpc_url="http://127.0.0.1:8545",
        factory_contract=FACTORY,
    )
    fields.update(overrides)
    return HubSpokeDeploymentRequest(**fields)


def expected_create2(artifacts_dir, request):
    artifact = ArtifactLoader(str(artifacts_dir)).load(request.contract_name)
    init_code = build_init_code(artifact, request.constructor_args)
    return compute_create2_address(FACTORY, format_salt(request.salt), init_code)


def signed_tx(mock_account):
    tx, = mock_account.sign_transaction.call_args.args
    return tx


def calldata(tx):
    return bytes.fromhex(tx['data'][2:])


@pytest.fixture
def counter(artifacts_dir):
    write_artifact(artifacts_dir, "Counter", abi=CONSTRUCTOR_ABI)


@pytest.fixture
def hub_and_spoke(artifacts_dir):
    write_artifact(artifacts_dir, "Hub")
    write_artifact(artifacts_dir, "Spoke", bytecode=SPOKE_BYTECODE)


@pytest.fixture
def deployer(settings, mock_w3, mock_account):
    return ContractDeployer(settings, w3=mock_w3, account=mock_account, skip_compile=True)


class TestDeploy:
    def test_successful_deployment(self, deployer, counter, artifacts_dir, mock_w3, mock_account, capsys):
        request = deploy_request()
        expected = expected_create2(artifacts_dir, request)
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected), relay_log(8453)]
        )

        result = deployer.deploy(request)

        assert result.matched
        assert result.deployed_address == expected
        assert result.computed_address == expected
        assert result.tx_hash == to_hex(TX_HASH)
        assert result.gas_used == 210_000
        assert result.gas_limit == 1_234_567
        assert result.gas_estimated
        assert result.gas_failure is None
        assert result.local_chain_id == 10
        assert result.target_chains == (10, 8453)
        assert result.relayed_chains == (8453,)
        assert deployer.stage is DeploymentStage.DONE

        out = capsys.readouterr().out
        assert "Target chains: 10, 8453" in out
        assert "Estimated gas: 1234567" in out
        assert f"Transaction hash: {to_hex(TX_HASH)}" in out
        assert "Gas used: 210000" in out
        assert f"Deployed contract address on local chain: {expected}" in out
        assert f"Computed CREATE2 address (for all chains): {expected}" in out
        assert "Cross-chain message sent to chain 8453" in out
        assert out.rstrip().endswith("Contract deployment initiated across specified chains.")

    def test_transaction_fields(self, deployer, counter, artifacts_dir, mock_w3, mock_account):
        request = deploy_request()
        expected = expected_create2(artifacts_dir, request)
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(expected)])

        deployer.deploy(request)

        tx = signed_tx(mock_account)
        assert tx['from'] == DEPLOYER
        assert tx['to'] == FACTORY
        assert tx['value'] == 0
        assert tx['gas'] == 1_234_567
        assert tx['nonce'] == 7
        assert tx['chainId'] == 10
        assert tx['type'] == 2
        assert tx['maxPriorityFeePerGas'] == 1_000_000_000
        assert tx['maxFeePerGas'] == int(1_000_000_000 * 1.2) + 1_000_000_000
        mock_w3.eth.get_transaction_count.assert_called_once_with(DEPLOYER, 'pending')
        mock_w3.eth.send_raw_transaction.assert_called_once_with(b'\xaa' * 8)
        mock_w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=WAIT_FOREVER)

        data = calldata(tx)
        assert data[:4] == function_signature_to_4byte_selector(DEPLOY_CONTRACT_SIGNATURE)
        chain_ids, init_code, salt = abi_decode(['uint256[]', 'bytes', 'bytes32'], data[4:])
        assert list(chain_ids) == [10, 8453]
        assert salt == format_salt("mysalt")
        assert compute_create2_address(FACTORY, salt, init_code) == expected

        estimate_call, = mock_w3.eth.estimate_gas.call_args.args
        assert estimate_call == {'from': DEPLOYER, 'to': FACTORY, 'data': tx['data']}

    def test_gas_estimation_failure_uses_fallback(self, deployer, counter, artifacts_dir, mock_w3, mock_account,
                                                 capsys):
        request = deploy_request()
        mock_w3.eth.estimate_gas.side_effect = Exception("execution reverted")
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected_create2(artifacts_dir, request))]
        )

        result = deployer.deploy(request)

        assert signed_tx(mock_account)['gas'] == 5_000_000
        assert not result.gas_estimated
        assert result.gas_failure.fallback_gas_limit == 5_000_000
        assert "execution reverted" in result.gas_failure.reason
        assert result.matched

        captured = capsys.readouterr()
        assert "Gas estimation failed, using manual gas limit of 5,000,000" in captured.err
        assert "Estimated gas" not in captured.out

    def test_configured_fallback_gas_limit(self, settings, counter, artifacts_dir, mock_w3, mock_account):
        settings.fallback_gas_limit = 3_000_000
        request = deploy_request()
        mock_w3.eth.estimate_gas.side_effect = ValueError("rpc down")
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected_create2(artifacts_dir, request))]
        )

        ContractDeployer(settings, w3=mock_w3, account=mock_account, skip_compile=True).deploy(request)

        assert signed_tx(mock_account)['gas'] == 3_000_000

    def test_legacy_gas_price_without_base_fee(self, deployer, counter, artifacts_dir, mock_w3, mock_account):
        request = deploy_request()
        mock_w3.eth.get_block.return_value = {}
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected_create2(artifacts_dir, request))]
        )

        deployer.deploy(request)

        tx = signed_tx(mock_account)
        assert tx['gasPrice'] == 2_000_000_000
        assert 'maxFeePerGas' not in tx
        assert 'type' not in tx

    def test_receipt_timeout_setting(self, settings, counter, artifacts_dir, mock_w3, mock_account):
        settings.receipt_timeout = 30.0
        request = deploy_request()
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected_create2(artifacts_dir, request))]
        )

        ContractDeployer(settings, w3=mock_w3, account=mock_account, skip_compile=True).deploy(request)

        mock_w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=30.0)

    def test_missing_event_fails_after_confirmation(self, deployer, counter, mock_w3, capsys):
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([relay_log(8453)])

        with pytest.raises(EventNotFoundError) as exc_info:
            deployer.deploy(deploy_request())

        assert exc_info.value.stage is DeploymentStage.CONFIRMED
        assert deployer.stage is DeploymentStage.FAILED
        out = capsys.readouterr().out
        assert "Transaction hash:" in out
        assert "Computed CREATE2" not in out

    def test_address_mismatch_is_a_warning(self, deployer, counter, mock_w3, capsys):
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(OTHER)])

        result = deployer.deploy(deploy_request())

        assert not result.matched
        assert result.deployed_address == OTHER
        assert result.mismatch is not None
        assert deployer.stage is DeploymentStage.DONE
        captured = capsys.readouterr()
        assert "Warning: Local deployed address does not match computed CREATE2 address" in captured.err
        assert "Contract deployment initiated across specified chains." in captured.out

    def test_reverted_transaction(self, deployer, counter, mock_w3):
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([], status=0)

        with pytest.raises(TransactionFailedError) as exc_info:
            deployer.deploy(deploy_request())

        assert exc_info.value.stage is DeploymentStage.SUBMITTED
        assert exc_info.value.context['tx_hash'] == to_hex(TX_HASH)

    def test_bad_constructor_args_fail_before_any_rpc(self, deployer, counter, mock_w3):
        with pytest.raises(ConstructorArgsError) as exc_info:
            deployer.deploy(deploy_request(constructor_args=(1,)))

        assert exc_info.value.stage is DeploymentStage.ARTIFACTS_READY
        mock_w3.eth.estimate_gas.assert_not_called()
        mock_w3.eth.send_raw_transaction.assert_not_called()

    def test_missing_artifact(self, deployer, artifacts_dir, mock_w3):
        with pytest.raises(ArtifactNotFoundError) as exc_info:
            deployer.deploy(deploy_request(contract_name="Nope"))

        assert exc_info.value.stage is DeploymentStage.IDLE
        mock_w3.eth.send_raw_transaction.assert_not_called()

    def test_compiles_before_loading(self, settings, counter, artifacts_dir, mock_w3, mock_account):
        request = deploy_request()
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected_create2(artifacts_dir, request))]
        )
        compiler = MagicMock()

        ContractDeployer(settings, w3=mock_w3, account=mock_account, compiler=compiler).deploy(request)

        compiler.compile.assert_called_once_with()


class TestDeployHubSpoke:
    def test_successful_hub_spoke_deployment(self, deployer, hub_and_spoke, mock_w3, mock_account, capsys):
        mock_w3.eth.chain_id = 1
        expected = compute_create3_address(FACTORY, format_salt("hubsalt"))
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt(
            [deployed_log(expected, chain_id=1), relay_log(8453), relay_log(34443)]
        )

        result = deployer.deploy_hub_spoke(hub_spoke_request())

        assert result.matched
        assert result.computed_address == expected
        assert result.local_chain_id == 1
        assert result.target_chains == (8453, 34443)
        assert result.relayed_chains == (8453, 34443)
        assert result.warnings == []
        assert deployer.stage is DeploymentStage.DONE

        data = calldata(signed_tx(mock_account))
        assert data[:4] == function_signature_to_4byte_selector(DEPLOY_HUB_AND_SPOKES_SIGNATURE)
        hub, spoke, salt, spoke_chains = abi_decode(['bytes', 'bytes', 'bytes32', 'uint256[]'], data[4:])
        assert spoke == bytes.fromhex(SPOKE_BYTECODE[2:])
        assert hub != spoke
        assert salt == format_salt("hubsalt")
        assert list(spoke_chains) == [8453, 34443]

        out = capsys.readouterr().out
        assert "Target spoke chains: 8453, 34443" in out
        assert f"Deployed hub contract address on local chain: {expected}" in out
        assert f"Computed CREATE3 address (used for all chains): {expected}" in out
        assert "Hub contract (Hub) deployed on chain ID 1" in out
        assert "Spoke contract (Spoke) deployment initiated on chains: [8453, 34443]" in out
        assert f"All contracts will be deployed to the same address: {expected}" in out

    def test_hub_spoke_fallback_gas_limit(self, deployer, hub_and_spoke, mock_w3, mock_account, capsys):
        mock_w3.eth.estimate_gas.side_effect = Exception("out of gas")
        expected = compute_create3_address(FACTORY, format_salt("hubsalt"))
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(expected)])

        result = deployer.deploy_hub_spoke(hub_spoke_request())

        assert signed_tx(mock_account)['gas'] == 8_000_000
        assert result.gas_failure.fallback_gas_limit == 8_000_000
        assert "using manual gas limit of 8,000,000" in capsys.readouterr().err

    def test_local_chain_listed_as_spoke(self, deployer, hub_and_spoke, mock_w3, capsys):
        mock_w3.eth.chain_id = 8453
        expected = compute_create3_address(FACTORY, format_salt("hubsalt"))
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(expected, 8453)])

        result = deployer.deploy_hub_spoke(hub_spoke_request())

        assert len(result.warnings) == 1
        assert "8453" in result.warnings[0]
        assert "also listed as a spoke chain" in capsys.readouterr().err

    def test_proxy_hash_from_request(self, deployer, hub_and_spoke, mock_w3):
        proxy_hash = b'\x07' * 32
        expected = compute_create3_address(FACTORY, format_salt("hubsalt"), proxy_hash)
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(expected)])

        result = deployer.deploy_hub_spoke(hub_spoke_request(proxy_init_code_hash=proxy_hash))

        assert result.matched
        assert result.computed_address == expected

    def test_hub_spoke_mismatch_is_a_warning(self, deployer, hub_and_spoke, mock_w3, capsys):
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(OTHER)])

        result = deployer.deploy_hub_spoke(hub_spoke_request())

        assert not result.matched
        assert "does not match computed CREATE3 address" in capsys.readouterr().err

    def test_compiles_once_for_both_contracts(self, settings, hub_and_spoke, mock_w3, mock_account):
        expected = compute_create3_address(FACTORY, format_salt("hubsalt"))
        mock_w3.eth.wait_for_transaction_receipt.return_value = make_receipt([deployed_log(expected)])
        compiler = MagicMock()

        ContractDeployer(settings, w3=mock_w3, account=mock_account, compiler=compiler).deploy_hub_spoke(
            hub_spoke_request()
        )

        compiler.compile.assert_called_once_with()


class TestPredict:
    def test_predict_create2_without_chain_access(self, settings, counter, artifacts_dir, capsys):
        deployer = ContractDeployer(settings, skip_compile=True)
        request = deploy_request()

        address = deployer.predict(request)

        assert address == expected_create2(artifacts_dir, request)
        assert deployer.w3 is None
        assert deployer.stage is DeploymentStage.DONE
        out = capsys.readouterr().out
        assert f"Computed CREATE2 address (for all chains): {address}" in out
        assert "Dry run: no transaction submitted." in out

    def test_create3_address_ignores_bytecode(self, settings, hub_and_spoke, artifacts_dir):
        deployer = ContractDeployer(settings, skip_compile=True)
        first = deployer.predict(hub_spoke_request())

        write_artifact(artifacts_dir, "Spoke", bytecode="0x6001600101")
        second = deployer.predict(hub_spoke_request())

        assert first == second == compute_create3_address(FACTORY, format_salt("hubsalt"))

    def test_settings_proxy_hash_is_used(self, settings, hub_and_spoke):
        settings.proxy_init_code_hash = b'\x09' * 32
        address = ContractDeployer(settings, skip_compile=True).predict(hub_spoke_request())
        assert address == compute_create3_address(FACTORY, format_salt("hubsalt"), b'\x09' * 32)

    def test_request_proxy_hash_beats_settings(self, settings, hub_and_spoke):
        settings.proxy_init_code_hash = b'\x09' * 32
        request = hub_spoke_request(proxy_init_code_hash=b'\x0a' * 32)
        address = ContractDeployer(settings, skip_compile=True).predict(request)
        assert address == compute_create3_address(FACTORY, format_salt("hubsalt"), b'\x0a' * 32)


class TestRpcFailures:
    def test_rejected_send_is_a_transaction_failure(self, deployer, counter, mock_w3):
        mock_w3.eth.send_raw_transaction.side_effect = ValueError("insufficient funds for gas * price + value")

        with pytest.raises(TransactionFailedError) as exc_info:
            deployer.deploy(deploy_request())

        assert "insufficient funds" in str(exc_info.value)
        assert exc_info.value.stage is DeploymentStage.GAS_ESTIMATED
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert deployer.stage is DeploymentStage.FAILED

    def test_nonce_lookup_failure_is_an_rpc_error(self, deployer, counter, mock_w3):
        mock_w3.eth.get_transaction_count.side_effect = ConnectionError("connection reset")

        with pytest.raises(RpcConnectionError) as exc_info:
            deployer.deploy(deploy_request())

        assert exc_info.value.context["rpc_url"] == "http://127.0.0.1:8545"
        assert deployer.stage is DeploymentStage.FAILED
        mock_w3.eth.send_raw_transaction.assert_not_called()

    def test_receipt_timeout_is_a_transaction_failure(self, settings, counter, mock_w3, mock_account):
        settings.receipt_timeout = 5.0
        mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not found")
        deployer = ContractDeployer(settings, w3=mock_w3, account=mock_account, skip_compile=True)

        with pytest.raises(TransactionFailedError) as exc_info:
            deployer.deploy(deploy_request())

        assert "not confirmed within 5.0 seconds" in str(exc_info.value)
        assert exc_info.value.stage is DeploymentStage.SUBMITTED
        assert deployer.stage is DeploymentStage.FAILED

    def test_chain_id_failure_in_hub_spoke(self, deployer, hub_and_spoke, mock_w3):
        type(mock_w3.eth).chain_id = PropertyMock(side_effect=ConnectionError("connection refused"))

        with pytest.raises(RpcConnectionError):
            deployer.deploy_hub_spoke(hub_spoke_request())

        assert deployer.stage is DeploymentStage.FAILED

    def test_unexpected_error_still_marks_failed(self, settings, mock_w3, mock_account):
        loader = MagicMock()
        loader.load.side_effect = RuntimeError("disk gone")
        deployer = ContractDeployer(settings, w3=mock_w3, account=mock_account, loader=loader,
                                    skip_compile=True)

        with pytest.raises(RuntimeError):
            deployer.deploy(deploy_request())

        assert deployer.stage is DeploymentStage.FAILED
