"""
HTTP Signatures for outgoing requests, see
https://datatracker.ietf.org/doc/html/draft-cavage-http-signatures-12

The keys are generated on the fly and thrown away afterwards. A server that actually
verifies the signature against the key published at keyId will reject the request;
this only satisfies servers that insist on the presence of a well-formed signature.
"""

import base64
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
import hashlib

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from fediresolve.reporting import trace
from . import HttpRequest


SIGNED_HEADERS = ( '(request-target)', 'host', 'date', 'digest' )

SIGNATURE_VALIDITY = timedelta(minutes=5)

# SHA-256 of the empty string
EMPTY_BODY_DIGEST = 'SHA-256=47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU='


@dataclass(frozen=True)
class SigningKeypair:
    """
    An ephemeral RSA keypair. Never persisted.
    """
    private_key: rsa.RSAPrivateKey


    @staticmethod
    def generate() -> 'SigningKeypair':
        trace('Generating ephemeral 2048-bit RSA keypair')
        return SigningKeypair(rsa.generate_private_key(public_exponent=65537, key_size=2048))


    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()


def body_digest(payload: bytes | None) -> str:
    if not payload:
        return EMPTY_BODY_DIGEST
    return 'SHA-256=' + base64.b64encode(hashlib.sha256(payload).digest()).decode('ascii')


def signing_string(request: HttpRequest, headers: tuple[str, ...] = SIGNED_HEADERS) -> str:
    """
    Construct the string that gets signed, from headers already present on the request.
    """
    lines = []
    for name in headers:
        if name == '(request-target)':
            lines.append(f'(request-target): { request.method.lower() } { request.parsed_uri.request_target }')
        else:
            value = _header(request, name)
            if value is None:
                raise ValueError(f'Cannot sign request, header missing: { name }')
            lines.append(f'{ name }: { value }')
    return '\n'.join(lines)


def sign_request(request: HttpRequest, key_id: str, keypair: SigningKeypair, now: datetime | None = None) -> HttpRequest:
    """
    Add Host, Date, Digest and Signature headers to the request. Neither method nor URI
    are touched. Returns the same request for convenience.
    """
    if now is None:
        now = datetime.now(UTC)

    if _header(request, 'host') is None:
        request.headers['Host'] = request.parsed_uri.netloc
    if _header(request, 'date') is None:
        request.headers['Date'] = format_datetime(now, usegmt=True)
    if _header(request, 'digest') is None:
        request.headers['Digest'] = body_digest(request.payload)

    to_sign = signing_string(request)
    signature = keypair.private_key.sign(to_sign.encode('utf-8'), padding.PKCS1v15(), hashes.SHA256())

    created = int(now.timestamp())
    expires = int((now + SIGNATURE_VALIDITY).timestamp())
    request.headers['Signature'] = (
            f'keyId="{ key_id }",'
            + 'algorithm="rsa-sha256",'
            + f'headers="{ " ".join(SIGNED_HEADERS) }",'
            + f'created={ created },'
            + f'expires={ expires },'
            + f'signature="{ base64.b64encode(signature).decode("ascii") }"')

    trace(f'Signed { request.method } { request.parsed_uri.uri } with keyId { key_id }')
    return request


def parse_signature_header(value: str) -> dict[str,str]:
    """
    Split a Signature header into its parameters.
    """
    ret = {}
    for part in value.split(','):
        name, _, param_value = part.partition('=')
        ret[name.strip()] = param_value.strip().strip('"')
    return ret


def _header(request: HttpRequest, name: str) -> str | None:
    for key, value in request.headers.items():
        if key.lower() == name:
            return value
    return None
