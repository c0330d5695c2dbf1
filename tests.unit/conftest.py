"""
Fixtures shared by the unit tests.
"""

import pytest

from fediresolve.protocols.web import WebClient
from fediresolve.protocols.web.signatures import SigningKeypair
from fediresolve.resolver import Resolver
from fediresolve.settings import ResolverSettings

from fakefediverse import FakeFediverse


@pytest.fixture(scope='session')
def keypair() -> SigningKeypair:
    """
    Generating RSA keys is slow, so all tests share one.
    """
    return SigningKeypair.generate()


@pytest.fixture
def fediverse() -> FakeFediverse:
    return FakeFediverse()


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings(attempt_delay=0, color=False)


@pytest.fixture
def web_client(fediverse: FakeFediverse, settings: ResolverSettings) -> WebClient:
    return WebClient(settings, fediverse.transport())


@pytest.fixture
def resolver(fediverse: FakeFediverse, settings: ResolverSettings, keypair: SigningKeypair) -> Resolver:
    return Resolver(settings, fediverse.transport(), keypair_factory=lambda: keypair)
