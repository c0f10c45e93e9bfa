import pytest
from web3.exceptions import ContractLogicError

from chain import ContractErrorKind
from config import DEFAULT_DOMAIN_SUFFIX, SNS_REGISTRY_ADDRESS
from conftest import OWNER
from exceptions import InvalidNameError
from sns import NameRecord, NameResolver, SuffixCache, name_to_token_id, validate_name


@pytest.fixture
def resolver(chain) -> NameResolver:
    return NameResolver(chain, SNS_REGISTRY_ADDRESS)


def test_name_record_full_name() -> None:
    assert NameRecord(label="alice", suffix="soph.id").full_name == "alice.soph.id"


def test_name_to_token_id_is_namehash() -> None:
    assert name_to_token_id("eth") == int(
        "93cdeb708b7545dc668eb9280176169d1c33cfd8ed6f04690a0bcc88a93fc4ae", 16
    )


def test_validate_name() -> None:
    assert validate_name("alice42") == "alice42"
    for bad in ("", "Alice", "al.ice", "a" * 29, "al ice"):
        with pytest.raises(InvalidNameError):
            validate_name(bad)


def test_suffix_cache_ttl_and_reset() -> None:
    now = [100.0]
    cache = SuffixCache(ttl=10, clock=lambda: now[0])
    cache.set("soph.id")
    assert cache.get() == "soph.id"

    now[0] = 111.0
    assert cache.get() is None

    cache.set("soph.id")
    cache.reset()
    assert cache.get() is None


@pytest.mark.asyncio
async def test_domain_suffix_strips_leading_dot_and_is_cached(chain, resolver) -> None:
    assert await resolver.get_domain_suffix() == "soph.id"
    assert await resolver.get_domain_suffix() == "soph.id"

    reads = [call for call in chain.calls if call[1] == "baseDomain"]
    assert len(reads) == 1

    resolver.suffix_cache.reset()
    chain.base_domain = ".sophon.xyz"
    assert await resolver.get_domain_suffix() == "sophon.xyz"


@pytest.mark.asyncio
async def test_domain_suffix_falls_back_on_failure(chain, resolver) -> None:
    chain.failures["baseDomain"] = ConnectionError("rpc down")
    assert await resolver.get_domain_suffix() == DEFAULT_DOMAIN_SUFFIX


@pytest.mark.asyncio
async def test_domain_suffix_falls_back_on_empty_value(chain, resolver) -> None:
    chain.base_domain = ""
    assert await resolver.get_domain_suffix() == DEFAULT_DOMAIN_SUFFIX


@pytest.mark.asyncio
async def test_resolve_name_composes_label_and_suffix(chain, resolver) -> None:
    chain.tokens_by_owner[OWNER] = 42
    chain.token_names[42] = "alice."

    record = await resolver.resolve_name(OWNER)

    assert record == NameRecord(label="alice", suffix="soph.id")
    assert record.full_name == "alice.soph.id"


@pytest.mark.asyncio
async def test_resolve_name_returns_none_without_token(resolver) -> None:
    assert await resolver.resolve_name(OWNER) is None


@pytest.mark.asyncio
async def test_resolve_name_never_raises(chain, resolver) -> None:
    chain.failures["tokenOfOwnerByIndex"] = ConnectionError("rpc down")
    assert await resolver.resolve_name(OWNER) is None


@pytest.mark.asyncio
async def test_resolve_name_ignores_malformed_labels(chain, resolver) -> None:
    chain.tokens_by_owner[OWNER] = 7
    chain.token_names[7] = "."
    assert await resolver.resolve_name(OWNER) is None

    chain.token_names[7] = None
    assert await resolver.resolve_name(OWNER) is None


@pytest.mark.asyncio
async def test_unminted_name_is_available(chain, resolver) -> None:
    assert await resolver.is_name_available("alice") is True

    owner_lookups = [call for call in chain.calls if call[1] == "ownerOf"]
    assert owner_lookups[0][2] == (name_to_token_id("alice.soph.id"),)


@pytest.mark.asyncio
async def test_taken_name_is_not_available(chain, resolver) -> None:
    chain.token_owners[name_to_token_id("alice.soph.id")] = OWNER
    assert await resolver.is_name_available("alice") is False


@pytest.mark.asyncio
async def test_legacy_nonexistent_token_reason_means_available(chain, resolver) -> None:
    chain.failures["ownerOf"] = ContractLogicError("execution reverted: ERC721: invalid token ID")
    assert await resolver.is_name_available("alice") is True


@pytest.mark.asyncio
async def test_infrastructure_errors_are_reraised(chain, resolver) -> None:
    chain.failures["ownerOf"] = ConnectionError("rpc down")
    with pytest.raises(ConnectionError):
        await resolver.is_name_available("alice")


@pytest.mark.asyncio
async def test_unrelated_reverts_are_reraised(chain, resolver) -> None:
    chain.failures["ownerOf"] = ContractLogicError("execution reverted: registry paused")
    with pytest.raises(ContractLogicError):
        await resolver.is_name_available("alice")


@pytest.mark.asyncio
async def test_empty_candidate_is_available_without_lookup(chain, resolver) -> None:
    assert await resolver.is_name_available("") is True
    assert chain.calls == []


@pytest.mark.asyncio
async def test_injected_classifier_decides_availability(chain) -> None:
    chain.failures["ownerOf"] = RuntimeError("whatever the adapter says")
    resolver = NameResolver(
        chain,
        SNS_REGISTRY_ADDRESS,
        classify_error=lambda error: ContractErrorKind.ENTITY_NOT_FOUND,
    )
    assert await resolver.is_name_available("alice") is True
