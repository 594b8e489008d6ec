#!/usr/bin/env python3
"""Munin plugin reporting days until OpenPGP keys published via WKD expire.

Called with ``config`` it declares one field per configured address, called
without arguments (or with ``fetch``/``cron``) it looks every address up in the
Web Key Directory and prints ``<field>.value <days>`` for each key that expires.
"""

import argparse
import base64
import hashlib
import http.client
import logging
import os
import re
import ssl
import struct
import sys
import time
import urllib.error
import urllib.parse
import urllib.request
from concurrent import futures
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import zbase32

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class PgpExpirationError(Exception):
    """Base class for errors raised by this plugin."""


class ConfigError(PgpExpirationError):
    """Plugin configuration is missing or invalid."""


class KeyParseError(PgpExpirationError):
    """Key material could not be parsed."""


@dataclass(frozen=True)
class WkdQuery:
    """Lookup locations for one address."""

    local_part: str
    domain: str
    hash: str
    advanced_url: str
    direct_url: str


@dataclass
class Signature:
    """Metadata of a signature packet, times in unix seconds"""

    version: int
    sig_type: int
    created: int
    expires_after: Optional[int] = None
    key_expires_after: Optional[int] = None
    issuer_key_id: Optional[str] = None
    issuer_fingerprint: Optional[str] = None

    def is_expired(self, now: int) -> bool:
        if not self.expires_after:
            return False
        return self.created + self.expires_after <= now


@dataclass
class KeyComponent:
    """Primary key or subkey with its effective expiration."""

    version: int
    fingerprint: Optional[str]
    key_id: str
    created: int
    is_primary: bool = False
    expires: Optional[int] = None
    revoked: bool = False
    validity_days: int = 0
    signatures: List[Signature] = field(default_factory=list, repr=False)


@dataclass
class ParsedKey:
    components: List[KeyComponent]
    user_ids: List[str] = field(default_factory=list)

    @property
    def primary(self) -> KeyComponent:
        return self.components[0]

    @property
    def fingerprint(self) -> Optional[str]:
        return self.primary.fingerprint

    @property
    def key_id(self) -> str:
        return self.primary.key_id

    @property
    def version(self) -> int:
        return self.primary.version

    @property
    def created(self) -> int:
        return self.primary.created

    @property
    def expires(self) -> Optional[int]:
        return self.primary.expires

    @property
    def revoked(self) -> bool:
        return self.primary.revoked

    @property
    def subkeys(self) -> List[KeyComponent]:
        return self.components[1:]


class ExpirationStatus:
    """Possible outcomes of evaluating a key."""

    EXPIRES = "expires"
    NEVER_EXPIRES = "never-expires"
    REVOKED = "revoked"


@dataclass(frozen=True)
class ExpirationResult:
    status: str
    days: Optional[int] = None

    @property
    def reportable(self) -> bool:
        return self.status == ExpirationStatus.EXPIRES


class OpenPGPKeyParser:
    """Lightweight OpenPGP transferable public key parser (RFC 4880, RFC 9580)"""

    TAG_SIGNATURE = 2
    TAG_PUBLIC_KEY = 6
    TAG_USER_ID = 13
    TAG_PUBLIC_SUBKEY = 14
    TAG_USER_ATTRIBUTE = 17

    SIG_CERTIFICATIONS = (0x10, 0x11, 0x12, 0x13)
    SIG_SUBKEY_BINDING = 0x18
    SIG_DIRECT_KEY = 0x1F
    SIG_KEY_REVOCATION = 0x20
    SIG_SUBKEY_REVOCATION = 0x28

    SUBPACKET_SIG_CREATED = 2
    SUBPACKET_SIG_EXPIRES = 3
    SUBPACKET_KEY_EXPIRES = 9
    SUBPACKET_ISSUER = 16
    SUBPACKET_ISSUER_FINGERPRINT = 33

    ARMOR_HEADER = b"-----BEGIN PGP"

    @staticmethod
    def parse_packet_header(data: bytes, offset: int) -> Tuple[int, int, int]:
        """Parse OpenPGP packet header, returns (tag, length, header_len)"""
        byte = data[offset]

        if byte & 0x80 == 0:
            raise KeyParseError(f"invalid packet tag byte 0x{byte:02x} at offset {offset}")

        if byte & 0x40:  # New format
            tag = byte & 0x3F
            if offset + 1 >= len(data):
                raise KeyParseError("incomplete packet header")

            length_byte = data[offset + 1]

            if length_byte < 192:
                return tag, length_byte, 2
            elif length_byte < 224:
                if offset + 2 >= len(data):
                    raise KeyParseError("incomplete packet header")
                return tag, ((length_byte - 192) << 8) + data[offset + 2] + 192, 3
            elif length_byte == 255:
                if offset + 5 >= len(data):
                    raise KeyParseError("incomplete packet header")
                return tag, struct.unpack('>I', data[offset+2:offset+6])[0], 6
            else:
                raise KeyParseError("partial body length in key packet")
        else:  # Old format
            tag = (byte & 0x3C) >> 2
            length_type = byte & 0x03

            if length_type == 0:
                if offset + 1 >= len(data):
                    raise KeyParseError("incomplete packet header")
                return tag, data[offset + 1], 2
            elif length_type == 1:
                if offset + 2 >= len(data):
                    raise KeyParseError("incomplete packet header")
                return tag, struct.unpack('>H', data[offset+1:offset+3])[0], 3
            elif length_type == 2:
                if offset + 4 >= len(data):
                    raise KeyParseError("incomplete packet header")
                return tag, struct.unpack('>I', data[offset+1:offset+5])[0], 5
            else:
                raise KeyParseError("indeterminate length in key packet")

    @classmethod
    def iter_packets(cls, data: bytes) -> Iterable[Tuple[int, bytes]]:
        offset = 0
        while offset < len(data):
            tag, length, header_len = cls.parse_packet_header(data, offset)
            start = offset + header_len
            end = start + length
            if end > len(data):
                raise KeyParseError(f"packet with tag {tag} runs past end of input")
            yield tag, data[start:end]
            offset = end

    @classmethod
    def dearmor(cls, data: bytes) -> bytes:
        """Strip ASCII armor, returning the binary packet stream."""
        lines = data.decode('ascii', errors='replace').splitlines()
        body = []
        in_block = False
        in_headers = False
        for line in lines:
            line = line.strip()
            if line.startswith("-----BEGIN PGP"):
                in_block = in_headers = True
                continue
            if not in_block:
                continue
            if line.startswith("-----END PGP"):
                break
            if in_headers:
                if not line or ": " in line:
                    continue
                in_headers = False
            if line.startswith("="):
                # CRC24 checksum line
                break
            body.append(line)
        if not body:
            raise KeyParseError("armored input contains no data")
        try:
            return base64.b64decode("".join(body), validate=True)
        except ValueError as e:
            raise KeyParseError(f"invalid armor: {e}") from e

    @staticmethod
    def _read_mpi_bytes(data: bytes, offset: int) -> bytes:
        if offset + 2 > len(data):
            raise KeyParseError("truncated MPI")
        bits = struct.unpack('>H', data[offset:offset+2])[0]
        end = offset + 2 + (bits + 7) // 8
        if end > len(data):
            raise KeyParseError("truncated MPI")
        return data[offset+2:end]

    @classmethod
    def parse_public_key_packet(cls, body: bytes, is_primary: bool) -> KeyComponent:
        """Parse a public key or subkey packet body"""
        if len(body) < 6:
            raise KeyParseError("truncated public key packet")

        version = body[0]
        created = struct.unpack('>I', body[1:5])[0]

        if version == 4:
            to_hash = b'\x99' + struct.pack('>H', len(body)) + body
            fingerprint = hashlib.sha1(to_hash).hexdigest().upper()
            key_id = fingerprint[-16:]
            validity_days = 0
        elif version == 6:
            if len(body) < 10:
                raise KeyParseError("truncated v6 public key packet")
            to_hash = b'\x9b' + struct.pack('>I', len(body)) + body
            fingerprint = hashlib.sha256(to_hash).hexdigest().upper()
            key_id = fingerprint[:16]
            validity_days = 0
        elif version in (2, 3):
            if len(body) < 8:
                raise KeyParseError("truncated v3 public key packet")
            validity_days = struct.unpack('>H', body[5:7])[0]
            # v3 keys are RSA; the key ID is the low 64 bits of the modulus
            modulus = cls._read_mpi_bytes(body, 8)
            if len(modulus) < 8:
                raise KeyParseError("v3 key modulus too short")
            fingerprint = None
            key_id = modulus[-8:].hex().upper()
        else:
            raise KeyParseError(f"unsupported public key version {version}")

        return KeyComponent(
            version=version,
            fingerprint=fingerprint,
            key_id=key_id,
            created=created,
            is_primary=is_primary,
            validity_days=validity_days,
        )

    @staticmethod
    def iter_subpackets(area: bytes) -> Iterable[Tuple[int, bytes]]:
        offset = 0
        while offset < len(area):
            first = area[offset]
            if first < 192:
                length, offset = first, offset + 1
            elif first < 255:
                if offset + 1 >= len(area):
                    raise KeyParseError("truncated subpacket length")
                length = ((first - 192) << 8) + area[offset + 1] + 192
                offset += 2
            else:
                if offset + 5 > len(area):
                    raise KeyParseError("truncated subpacket length")
                length = struct.unpack('>I', area[offset+1:offset+5])[0]
                offset += 5
            if length == 0 or offset + length > len(area):
                raise KeyParseError("subpacket runs past end of signature")
            yield area[offset] & 0x7F, area[offset+1:offset+length]
            offset += length

    @staticmethod
    def _read_time(value: bytes) -> int:
        if len(value) != 4:
            raise KeyParseError("time subpacket has wrong size")
        return struct.unpack('>I', value)[0]

    @classmethod
    def _apply_subpackets(cls, sig: Signature, area: bytes, hashed: bool):
        for sub_type, value in cls.iter_subpackets(area):
            if sub_type == cls.SUBPACKET_ISSUER and len(value) == 8:
                sig.issuer_key_id = sig.issuer_key_id or value.hex().upper()
            elif sub_type == cls.SUBPACKET_ISSUER_FINGERPRINT and len(value) > 1:
                sig.issuer_fingerprint = sig.issuer_fingerprint or value[1:].hex().upper()
            elif not hashed:
                # only issuer hints are taken from the unhashed area
                continue
            elif sub_type == cls.SUBPACKET_SIG_CREATED:
                sig.created = cls._read_time(value)
            elif sub_type == cls.SUBPACKET_SIG_EXPIRES:
                sig.expires_after = cls._read_time(value)
            elif sub_type == cls.SUBPACKET_KEY_EXPIRES:
                sig.key_expires_after = cls._read_time(value)

    @classmethod
    def parse_signature_packet(cls, body: bytes) -> Signature:
        """Parse the metadata of a signature packet"""
        if not body:
            raise KeyParseError("empty signature packet")

        version = body[0]

        if version in (2, 3):
            if len(body) < 19 or body[1] != 5:
                raise KeyParseError("malformed v3 signature packet")
            return Signature(
                version=version,
                sig_type=body[2],
                created=struct.unpack('>I', body[3:7])[0],
                issuer_key_id=body[7:15].hex().upper(),
            )

        if version == 4:
            size_fmt, size_len = '>H', 2
        elif version == 6:
            size_fmt, size_len = '>I', 4
        else:
            raise KeyParseError(f"unsupported signature version {version}")

        offset = 4
        if offset + size_len > len(body):
            raise KeyParseError("truncated signature packet")
        hashed_len = struct.unpack(size_fmt, body[offset:offset+size_len])[0]
        offset += size_len
        hashed = body[offset:offset+hashed_len]
        offset += hashed_len
        if len(hashed) != hashed_len or offset + size_len > len(body):
            raise KeyParseError("truncated signature packet")
        unhashed_len = struct.unpack(size_fmt, body[offset:offset+size_len])[0]
        offset += size_len
        unhashed = body[offset:offset+unhashed_len]
        if offset + unhashed_len > len(body):
            raise KeyParseError("truncated signature packet")

        sig = Signature(version=version, sig_type=body[1], created=0)
        cls._apply_subpackets(sig, hashed, hashed=True)
        cls._apply_subpackets(sig, unhashed, hashed=False)
        if not sig.created:
            raise KeyParseError("signature without creation time")
        return sig

    @staticmethod
    def is_self_signature(sig: Signature, primary: KeyComponent) -> bool:
        if sig.issuer_fingerprint is not None and primary.fingerprint is not None:
            return sig.issuer_fingerprint == primary.fingerprint
        if sig.issuer_key_id is not None:
            return sig.issuer_key_id == primary.key_id
        if sig.issuer_fingerprint is not None:
            # v3 primary keys only have a key ID
            return sig.issuer_fingerprint.endswith(primary.key_id)
        return True

    @classmethod
    def _resolve_expiration(cls, component: KeyComponent, primary: KeyComponent,
                            valid_types: Sequence[int], revocation_type: int, now: int):
        self_sigs = [
            sig for sig in component.signatures
            if cls.is_self_signature(sig, primary)
            and sig.created <= now and not sig.is_expired(now)
        ]
        component.revoked = any(sig.sig_type == revocation_type for sig in self_sigs)

        binding = [sig for sig in self_sigs if sig.sig_type in valid_types]
        expires_after = None
        if binding:
            expires_after = max(binding, key=lambda sig: sig.created).key_expires_after
        if expires_after:
            component.expires = component.created + expires_after
        elif component.validity_days:
            component.expires = component.created + component.validity_days * SECONDS_PER_DAY

    def parse(self, data: bytes, now: Optional[int] = None) -> ParsedKey:
        """Parse an OpenPGP certificate into its keys and expirations.

        Only the first certificate in ``data`` is considered. Signatures are
        not verified; a signature counts as a self-signature when its issuer
        matches the primary key or when it names no issuer at all.
        """
        if now is None:
            now = int(time.time())
        if not data:
            raise KeyParseError("no key material")
        if data.lstrip().startswith(self.ARMOR_HEADER):
            data = self.dearmor(data)

        primary = None
        components = []
        user_ids = []
        current = None

        for tag, body in self.iter_packets(data):
            if tag == self.TAG_PUBLIC_KEY:
                if primary is not None:
                    logger.debug("ignoring additional certificate in key material")
                    break
                primary = current = self.parse_public_key_packet(body, is_primary=True)
                components.append(primary)
            elif primary is None:
                raise KeyParseError(f"key material starts with packet tag {tag}, not a public key")
            elif tag == self.TAG_PUBLIC_SUBKEY:
                current = self.parse_public_key_packet(body, is_primary=False)
                components.append(current)
            elif tag == self.TAG_USER_ID:
                user_ids.append(body.decode('utf-8', errors='replace'))
                current = primary
            elif tag == self.TAG_USER_ATTRIBUTE:
                current = primary
            elif tag == self.TAG_SIGNATURE:
                current.signatures.append(self.parse_signature_packet(body))

        if primary is None:
            raise KeyParseError("no public key packet found")

        self._resolve_expiration(
            primary, primary,
            self.SIG_CERTIFICATIONS + (self.SIG_DIRECT_KEY,),
            self.SIG_KEY_REVOCATION, now,
        )
        for subkey in components[1:]:
            self._resolve_expiration(
                subkey, primary,
                (self.SIG_SUBKEY_BINDING,),
                self.SIG_SUBKEY_REVOCATION, now,
            )

        return ParsedKey(components=components, user_ids=user_ids)


class HTTPSOnlyRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Follow redirects only while they stay on https"""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        if urllib.parse.urlparse(newurl).scheme != 'https':
            raise urllib.error.URLError(f"refusing redirect from {req.full_url} to {newurl}")
        return super().redirect_request(req, fp, code, msg, headers, newurl)


class WKDResolver:
    """Web Key Directory lookup"""

    def __init__(self, timeout: float = 10):
        self.timeout = timeout
        self.ssl_context = ssl.create_default_context()
        self.opener = urllib.request.build_opener(
            urllib.request.HTTPSHandler(context=self.ssl_context),
            HTTPSOnlyRedirectHandler(),
        )

    def compute_wkd_hash(self, local_part: str) -> str:
        """Compute WKD hash"""
        local_lower = local_part.lower()
        sha1_hash = hashlib.sha1(local_lower.encode('utf-8')).digest()
        encoded = zbase32.encode(sha1_hash)
        if isinstance(encoded, bytes):
            encoded = encoded.decode('ascii')
        return encoded

    def build_query(self, email: str) -> WkdQuery:
        local, domain = parse_email(email)
        wkd_hash = self.compute_wkd_hash(local)
        local_param = urllib.parse.quote(local, safe='')

        return WkdQuery(
            local_part=local,
            domain=domain,
            hash=wkd_hash,
            advanced_url=(
                f"https://openpgpkey.{domain}/.well-known/openpgpkey/{domain}"
                f"/hu/{wkd_hash}?l={local_param}"
            ),
            direct_url=f"https://{domain}/.well-known/openpgpkey/hu/{wkd_hash}?l={local_param}",
        )

    def _get(self, url: str) -> Optional[bytes]:
        req = urllib.request.Request(url, method='GET')
        req.add_header('User-Agent', 'pgp-expiration/1.0')
        with self.opener.open(req, timeout=self.timeout) as resp:
            if 200 <= resp.status < 300:
                return resp.read()
            logger.info("%s returned HTTP %s", url, resp.status)
            return None

    def fetch(self, email: str) -> Optional[bytes]:
        """Fetch key from WKD, advanced method first then direct"""
        query = self.build_query(email)

        for method, url in (("advanced", query.advanced_url), ("direct", query.direct_url)):
            logger.debug("trying %s method via URL '%s'", method, url)
            try:
                data = self._get(url)
            except urllib.error.HTTPError as e:
                logger.info("%s: no key published via %s method (HTTP %s)", email, method, e.code)
                continue
            except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
                reason = getattr(e, 'reason', e)
                logger.warning("%s: %s method fetch failed: %s", email, method, reason)
                continue
            if data:
                return data
            logger.info("%s: empty response via %s method", email, method)

        return None


class ExpirationEvaluator:
    """Turns a parsed key into days until expiration"""

    def evaluate(self, parsed_key: ParsedKey, now: int) -> ExpirationResult:
        """Evaluate the primary key's expiration at ``now`` (unix seconds)"""
        if parsed_key.revoked:
            return ExpirationResult(ExpirationStatus.REVOKED)
        if not parsed_key.expires:
            return ExpirationResult(ExpirationStatus.NEVER_EXPIRES)
        days = (parsed_key.expires - now) // SECONDS_PER_DAY
        return ExpirationResult(ExpirationStatus.EXPIRES, days)


class ReportEmitter:
    """Munin output for both plugin modes"""

    FIELD_INVALID = re.compile(r"(^[^A-Za-z_]|[^A-Za-z0-9_])")

    GRAPH_HEADER = (
        "graph_title OpenPGP key expiration",
        "graph_vlabel days to expiration",
        "graph_category security",
        "graph_args --base 1000",
    )

    def __init__(self, warning: int = 14, critical: int = 7):
        self.warning = warning
        self.critical = critical

    @classmethod
    def field_name(cls, email: str) -> str:
        return cls.FIELD_INVALID.sub("_", email)

    @classmethod
    def field_names(cls, addresses: Sequence[str]) -> Dict[str, str]:
        """Map each address to a field name unique within ``addresses``."""
        names = {}
        taken = set()
        for address in addresses:
            if address in names:
                continue
            name = cls.field_name(address)
            if name in taken:
                name = f"{name}_{hashlib.sha1(address.encode('utf-8')).hexdigest()[:8]}"
            names[address] = name
            taken.add(name)
        return names

    def emit_config(self, addresses: Sequence[str]) -> str:
        lines = list(self.GRAPH_HEADER)
        for address, name in self.field_names(addresses).items():
            lines.append(f"{name}.label {address}")
            lines.append(f"{name}.warning {self.warning}:")
            lines.append(f"{name}.critical {self.critical}:")
        return "\n".join(lines)

    def emit_values(self, results: Sequence[Tuple[str, Optional[ExpirationResult]]]) -> str:
        names = self.field_names([address for address, _ in results])
        return "\n".join(
            f"{names[address]}.value {result.days}"
            for address, result in results
            if result is not None and result.reportable
        )


HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def parse_email(email: str) -> Tuple[str, str]:
    """Split an address into local part and lowercased ASCII domain"""
    if '@' not in email or any(c.isspace() for c in email):
        raise ValueError(f"Invalid email: {email}")
    local, domain = email.rsplit('@', 1)
    if not local or not domain:
        raise ValueError(f"Invalid email: {email}")
    try:
        domain = domain.encode('idna').decode('ascii').lower()
    except UnicodeError:
        raise ValueError(f"Invalid email: {email}") from None
    if not all(HOSTNAME_LABEL.match(label) for label in domain.split('.')):
        raise ValueError(f"Invalid email: {email}")
    return local, domain


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass
class Config:
    emails: List[str]
    warning: int = 14
    critical: int = 7
    timeout: int = 10
    workers: int = 4
    dirty_config: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        if environ is None:
            environ = os.environ

        raw = environ.get('emails')
        if raw is None:
            raise ConfigError("env.emails is not set")

        emails = []
        for email in raw.split():
            try:
                parse_email(email)
            except ValueError as e:
                raise ConfigError(str(e)) from None
            if email not in emails:
                emails.append(email)

        warning = _int_setting(environ, 'warning', 14)
        critical = _int_setting(environ, 'critical', 7)
        if critical > warning:
            raise ConfigError(f"critical ({critical}) must not exceed warning ({warning})")

        return cls(
            emails=emails,
            warning=warning,
            critical=critical,
            timeout=_int_setting(environ, 'wkd_timeout', 10),
            workers=_int_setting(environ, 'workers', 4),
            dirty_config=environ.get('MUNIN_CAP_DIRTYCONFIG', '') == '1',
        )


class Driver:
    """Runs the lookup pipeline and prints the report"""

    def __init__(self, config: Config, resolver: Optional[WKDResolver] = None,
                 parser: Optional[OpenPGPKeyParser] = None,
                 evaluator: Optional[ExpirationEvaluator] = None,
                 emitter: Optional[ReportEmitter] = None, out=None):
        self.config = config
        self.resolver = resolver or WKDResolver(timeout=config.timeout)
        self.parser = parser or OpenPGPKeyParser()
        self.evaluator = evaluator or ExpirationEvaluator()
        self.emitter = emitter or ReportEmitter(config.warning, config.critical)
        self.out = out

    def check(self, email: str, now: int) -> Optional[ExpirationResult]:
        """Resolve, parse and evaluate one address; None when it has no usable key"""
        try:
            key_data = self.resolver.fetch(email)
        except ValueError as e:
            logger.warning("%s: fetch failed: %s", email, e)
            return None
        if not key_data:
            logger.info("%s: public key NOT found via WKD", email)
            return None

        try:
            parsed = self.parser.parse(key_data, now=now)
        except KeyParseError as e:
            logger.warning("%s: could not parse key material: %s", email, e)
            return None

        logger.debug("%s: fingerprint %s created %s", email, parsed.fingerprint, parsed.created)
        result = self.evaluator.evaluate(parsed, now)
        if not result.reportable:
            logger.info("%s: key %s is %s", email, parsed.key_id, result.status)
        return result

    def collect(self, now: Optional[int] = None) -> List[Tuple[str, Optional[ExpirationResult]]]:
        if now is None:
            now = int(time.time())
        emails = self.config.emails
        if not emails:
            return []
        workers = min(self.config.workers, len(emails))
        with futures.ThreadPoolExecutor(max_workers=workers) as ex:
            results = list(ex.map(lambda email: self.check(email, now), emails))
        return list(zip(emails, results))

    def _print(self, text: str):
        if text:
            print(text, file=self.out)

    def fetch(self, now: Optional[int] = None) -> int:
        self._print(self.emitter.emit_values(self.collect(now)))
        return 0

    def config_mode(self) -> int:
        self._print(self.emitter.emit_config(self.config.emails))
        if self.config.dirty_config:
            return self.fetch()
        return 0

    def run(self, mode: str = 'fetch') -> int:
        if mode == 'config':
            return self.config_mode()
        return self.fetch()


def setup_logging(environ: Optional[Mapping[str, str]] = None):
    if environ is None:
        environ = os.environ
    level = getattr(logging, environ.get('LOG_LEVEL', 'WARNING').upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format='pgp_expiration: %(levelname)s: %(message)s',
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        prog='pgp_expiration',
        description='Report days until OpenPGP keys published via WKD expire',
        epilog="Addresses are read from the 'emails' environment variable.",
    )
    parser.add_argument(
        'mode', nargs='?', default='fetch', choices=('config', 'fetch', 'cron'),
        help="'config' declares the fields, 'fetch' (default) or 'cron' reports values",
    )
    args = parser.parse_args(argv)

    setup_logging()

    try:
        config = Config.from_env()
    except ConfigError as e:
        print(f"pgp_expiration: error: {e}", file=sys.stderr)
        return 1

    return Driver(config).run(args.mode)


if __name__ == "__main__":
    sys.exit(main())
