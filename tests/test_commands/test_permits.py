"""
EIP-2612 permit command tests: sign, revoke, spend.
"""

import pytest

from test_mocks import (
    MOCK_CHAIN_ID,
    MOCK_DEADLINE_FUTURE,
    MOCK_DEADLINE_PAST,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_SPENDER_ADDRESS,
    MOCK_SPENDER_PRIVATE_KEY,
    MOCK_TOKEN_ADDRESS,
    MOCK_TOKEN_NAME,
    ONE_TOKEN,
    MockChainClient,
    create_mock_config,
    create_mock_context,
    create_signed_permit,
)

from erc20_toolkit.adapters.evm.schemas import EVMTokenPermit
from erc20_toolkit.adapters.evm.signatures import signature_from_packed
from erc20_toolkit.adapters.evm.verifies import verify_permit_signer
from erc20_toolkit.commands import permits
from erc20_toolkit.engine.exceptions import ConfigError, SignatureVerificationError

NOW = 1_700_000_000


def spend_config(permit=None, **overrides):
    permit = permit or create_signed_permit()
    values = {
        "permit_signature": permit.signature.to_packed_hex(),
        "permit_value": permit.value,
        "permit_deadline": permit.deadline,
    }
    values.update(overrides)
    return create_mock_config(**values)


class TestPermitSign:

    @pytest.mark.asyncio
    async def test_prints_env_block_with_valid_signature(self, owner_client):
        owner_client.nonces[MOCK_OWNER_ADDRESS] = 4
        ctx = create_mock_context(owner_client)

        result = await permits.cmd_permit_sign(ctx, "2", "60", now=NOW)

        assert ctx.lines[0] == "--- Copy to .env ---"
        assert ctx.lines[1] == f"PERMIT_SIGNATURE={result['packed_signature']}"
        assert ctx.lines[2] == f"PERMIT_VALUE={2 * ONE_TOKEN}"
        assert ctx.lines[3] == f"PERMIT_DEADLINE={NOW + 3600}"
        assert ctx.lines[4] == "--------------------"
        assert owner_client.sent() == []

        permit = EVMTokenPermit(
            owner=MOCK_OWNER_ADDRESS,
            spender=MOCK_SPENDER_ADDRESS,
            token=MOCK_TOKEN_ADDRESS,
            value=2 * ONE_TOKEN,
            nonce=4,
            deadline=NOW + 3600,
            chain_id=MOCK_CHAIN_ID,
            signature=signature_from_packed(result["packed_signature"]),
        )
        assert verify_permit_signer(permit, domain_name=MOCK_TOKEN_NAME) == MOCK_OWNER_ADDRESS

    @pytest.mark.asyncio
    async def test_requires_spender_address(self, owner_client):
        ctx = create_mock_context(owner_client, create_mock_config(spender_address=None))
        with pytest.raises(ConfigError, match="SPENDER_ADDRESS"):
            await permits.cmd_permit_sign(ctx)

    @pytest.mark.asyncio
    async def test_bad_ttl(self, owner_client):
        with pytest.raises(ConfigError, match="TTL"):
            await permits.cmd_permit_sign(create_mock_context(owner_client), "1", "soon")


class TestPermitRevoke:

    @pytest.mark.parametrize("raw,expected", [
        (None, 30), ("10", 10), ("1.5", 1), ("12.99", 12), ("0.5", 0), ("0", 30), ("-5", 30), ("abc", 30), ("inf", 30),
    ])
    def test_revoke_ttl(self, raw, expected):
        assert permits._revoke_ttl(raw) == expected

    @pytest.mark.asyncio
    async def test_spender_submits_zero_permit(self, owner_client):
        owner_client.allowances[(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS)] = ONE_TOKEN
        ctx = create_mock_context(owner_client)

        result = await permits.cmd_permit_revoke(ctx, "15", now=NOW)

        assert result["submitter"] == MOCK_SPENDER_ADDRESS
        assert result["deadline"] == NOW + 900
        fn, args = owner_client.sent()[0]
        assert fn == "permit"
        assert args[:4] == (MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 0, NOW + 900)
        assert owner_client.allowances[(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS)] == 0
        assert ctx.lines[-1] == "status: success"

    @pytest.mark.asyncio
    async def test_owner_submits_without_spender_key(self, owner_client):
        ctx = create_mock_context(owner_client, create_mock_config(spender_private_key=None))
        result = await permits.cmd_permit_revoke(ctx, now=NOW)
        assert result["submitter"] == MOCK_OWNER_ADDRESS
        assert result["deadline"] == NOW + 1800


class TestPermitSpend:

    @pytest.fixture
    def spender_client(self):
        return MockChainClient(private_key=MOCK_SPENDER_PRIVATE_KEY)

    @pytest.mark.asyncio
    async def test_permit_then_transfer_from(self, spender_client):
        ctx = create_mock_context(spender_client, spend_config())

        result = await permits.cmd_permit_spend(ctx)

        assert [fn for fn, _ in spender_client.sent()] == ["permit", "transferFrom"]
        assert spender_client.sent()[1][1] == (MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, ONE_TOKEN)
        assert spender_client.balances[MOCK_SPENDER_ADDRESS] == ONE_TOKEN
        assert spender_client.nonces[MOCK_OWNER_ADDRESS] == 1
        assert result["value"] == ONE_TOKEN
        assert ctx.lines[-1] == f"Transferred 1 YAN to {MOCK_SPENDER_ADDRESS}"

    @pytest.mark.asyncio
    async def test_partial_amount_to_recipient(self, spender_client):
        ctx = create_mock_context(spender_client, spend_config())

        await permits.cmd_permit_spend(ctx, "0.25", MOCK_RECIPIENT_ADDRESS)

        assert spender_client.balances[MOCK_RECIPIENT_ADDRESS] == ONE_TOKEN // 4
        assert spender_client.allowances[(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS)] == 3 * ONE_TOKEN // 4

    @pytest.mark.asyncio
    async def test_expired_permit_rejected(self, spender_client):
        config = spend_config(create_signed_permit(deadline=MOCK_DEADLINE_PAST))
        with pytest.raises(ConfigError, match="expired"):
            await permits.cmd_permit_spend(create_mock_context(spender_client, config))
        assert spender_client.sent() == []

    @pytest.mark.asyncio
    async def test_stale_nonce_fails_verification(self, spender_client):
        spender_client.nonces[MOCK_OWNER_ADDRESS] = 1
        with pytest.raises(SignatureVerificationError):
            await permits.cmd_permit_spend(create_mock_context(spender_client, spend_config()))
        assert spender_client.sent() == []

    @pytest.mark.asyncio
    async def test_missing_permit_env(self, spender_client):
        config = create_mock_config()
        with pytest.raises(ConfigError, match="PERMIT_SIGNATURE, PERMIT_VALUE, PERMIT_DEADLINE"):
            await permits.cmd_permit_spend(create_mock_context(spender_client, config))

    @pytest.mark.asyncio
    async def test_malformed_signature(self, spender_client):
        config = spend_config(permit_signature="0x1234")
        with pytest.raises(ConfigError, match="PERMIT_SIGNATURE"):
            await permits.cmd_permit_spend(create_mock_context(spender_client, config))

    @pytest.mark.asyncio
    async def test_permit_for_other_spender_rejected(self, spender_client):
        permit = create_signed_permit(spender=MOCK_RECIPIENT_ADDRESS, deadline=MOCK_DEADLINE_FUTURE)
        with pytest.raises(SignatureVerificationError):
            await permits.cmd_permit_spend(create_mock_context(spender_client, spend_config(permit)))
