#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
hookminer — CREATE2 salt miner for flag-encoded hook addresses (offline).

A pool router decides which hook callbacks to invoke by reading bits of the
hook's address. This tool searches salts 0, 1, 2, ... until the CREATE2
address of the hook carries exactly the required flag bits.

Commands
  mine      -> First salt in [start, start + max-loop) whose address carries the flags
  address   -> One-shot CREATE2 address for a given salt, with flag report
  check     -> Test addresses against the flag predicate

Notes
- No RPC. The mined address is NOT checked for existing code; do that before broadcasting.
- Init code = bytecode + encoded (poolManager, oink, creator, creatorFeeBps).
  Default encoding is the Solidity ABI; --packed reproduces the legacy web UI, which
  joined bytecode, addresses and the fee as hex digits (left-padded to whole bytes).
- Every deployment option can also come from HOOKMINER_* env vars or a --config JSON file.

Examples
  # Mine from a Foundry artifact
  $ python hookminer.py mine --deployer 0xDepl... --artifact out/OinkOink.sol/OinkOink.json \
        --pool-manager 0xPM... --oink 0xOink... --creator 0xMe... --creator-fee-bps 100

  # Check what a given salt produces
  $ python hookminer.py address --deployer 0xDepl... --salt-int 4242 --init-code 0x60...
"""

import json
import time
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import click
from eth_abi import encode as abi_encode
from eth_utils import is_address, keccak, to_canonical_address, to_checksum_address

AddressLike = Union[str, bytes]

# -------------------------- Constants --------------------------

BEFORE_SWAP_FLAG = 1 << 153
AFTER_SWAP_FLAG = 1 << 152
ACCESS_FLAG = 1 << 148
FLAG_MASK = 0xFFF << 148
HOOK_FLAGS = BEFORE_SWAP_FLAG | AFTER_SWAP_FLAG | ACCESS_FLAG
MAX_LOOP = 20000

FLAGS: Dict[str, int] = {
    "before-swap": BEFORE_SWAP_FLAG,
    "after-swap": AFTER_SWAP_FLAG,
    "access": ACCESS_FLAG,
}

CREATE2_PREFIX = b"\xff"
NO_MATCH_MESSAGE = "No suitable hook found. Please try again."

# -------------------------- Errors --------------------------

class HookMinerError(Exception):
    """Base for search failures."""

class NoMatchFound(HookMinerError):
    """Every salt in the searched range failed the flag predicate."""

    def __init__(self, attempts: int, message: str = NO_MATCH_MESSAGE):
        super().__init__(message)
        self.attempts = attempts

class SearchCancelled(HookMinerError):
    def __init__(self, attempts: int):
        super().__init__(f"Search cancelled after {attempts} attempts")
        self.attempts = attempts

# -------------------------- Helpers --------------------------

def strip0x(h: str) -> str:
    return h[2:] if h.startswith(("0x", "0X")) else h

def to_bytes(h: str) -> bytes:
    h2 = strip0x(h.strip())
    if len(h2) % 2 != 0:
        raise ValueError("Hex length must be even")
    return bytes.fromhex(h2)

def pad32(b: bytes) -> bytes:
    return b.rjust(32, b"\x00")

def as_address_bytes(addr: AddressLike) -> bytes:
    if not is_address(addr):
        raise ValueError(f"Not a 20-byte address: {addr!r}")
    return to_canonical_address(addr)

def salt_bytes(i: int) -> bytes:
    """32-byte big-endian salt for counter ``i``."""
    if i < 0:
        raise ValueError("salt must be >= 0")
    return i.to_bytes(32, "big")

# -------------------------- CREATE2 --------------------------

def _create2(sender: bytes, salt: bytes, init_code_hash: bytes) -> bytes:
    # inputs already validated; search hot path
    return keccak(CREATE2_PREFIX + sender + salt + init_code_hash)[12:]

def create2_address_from_hash(deployer: AddressLike, salt: bytes, init_code_hash: bytes) -> bytes:
    """keccak256(0xff ++ deployer ++ salt ++ init_code_hash)[12:] (EIP-1014)."""
    sender = as_address_bytes(deployer)
    if len(salt) != 32:
        raise ValueError(f"Salt must be 32 bytes, got {len(salt)}")
    if len(init_code_hash) != 32:
        raise ValueError(f"Init code hash must be 32 bytes, got {len(init_code_hash)}")
    return _create2(sender, salt, init_code_hash)

def create2_address(deployer: AddressLike, salt: bytes, init_code: bytes) -> bytes:
    return create2_address_from_hash(deployer, salt, keccak(init_code))

# -------------------------- Flags --------------------------

def address_to_int(addr: AddressLike) -> int:
    if isinstance(addr, str):
        addr = as_address_bytes(addr)
    return int.from_bytes(addr, "big")

def matches_flags(addr: AddressLike, mask: int = FLAG_MASK, required: int = HOOK_FLAGS) -> bool:
    # int is unbounded: mask bits above 159 are simply never set in an address
    return (address_to_int(addr) & mask) == required

def flags_from_names(names: Iterable[str]) -> int:
    out = 0
    for name in names:
        key = name.strip().lower().replace("_", "-")
        if key not in FLAGS:
            raise ValueError(f"Unknown flag {name!r}; expected one of {', '.join(FLAGS)}")
        out |= FLAGS[key]
    return out

def describe_flags(addr: AddressLike, mask: int = FLAG_MASK) -> List[str]:
    n = address_to_int(addr) & mask
    return [name for name, bit in FLAGS.items() if n & bit]

# -------------------------- Init code --------------------------

@dataclass(frozen=True)
class HookConstructorArgs:
    pool_manager: str
    oink: str
    creator: str
    creator_fee_bps: int

def packed_hex(parts: List[str]) -> bytes:
    """Join hex strings digit-wise; an odd total gets one leading zero nibble."""
    h = "".join(strip0x(p) for p in parts)
    if len(h) % 2:
        h = "0" + h
    return bytes.fromhex(h)

def build_init_code(bytecode: bytes, args: HookConstructorArgs, packed: bool = False) -> bytes:
    addrs = [as_address_bytes(a) for a in (args.pool_manager, args.oink, args.creator)]
    if args.creator_fee_bps < 0:
        raise ValueError("creator fee must be >= 0")
    if packed:
        # fee as minimal hex digits; an odd total shifts the whole code by a nibble
        return packed_hex([bytes(bytecode).hex()] + [a.hex() for a in addrs] + [format(args.creator_fee_bps, "x")])
    enc = abi_encode(
        ["address", "address", "address", "uint256"],
        [to_checksum_address(a) for a in addrs] + [args.creator_fee_bps],
    )
    return bytes(bytecode) + enc

def load_bytecode(path: str) -> bytes:
    """Creation bytecode from a Foundry/Hardhat JSON artifact or a raw hex file."""
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if path.endswith(".json"):
        obj = json.loads(text)
        code = obj.get("bytecode")
        if isinstance(code, dict):
            code = code.get("object")
        if not isinstance(code, str):
            raise ValueError(f"{path}: no bytecode found in artifact")
        return to_bytes(code)
    return to_bytes(text)

# -------------------------- Search --------------------------

@dataclass
class HookHit:
    salt_int: int
    salt_hex: str
    address: str
    attempts: int
    flags: List[str]

def iter_salts(count: int, start: int = 0) -> Iterator[Tuple[int, bytes]]:
    if count < 0 or start < 0:
        raise ValueError("count and start must be >= 0")
    for i in range(start, start + count):
        yield i, salt_bytes(i)

def deadline_after(seconds: float) -> Callable[[], bool]:
    end = time.monotonic() + seconds
    return lambda: time.monotonic() >= end

def mine(
    deployer: AddressLike,
    init_code: bytes,
    max_loop: int = MAX_LOOP,
    mask: int = FLAG_MASK,
    required: int = HOOK_FLAGS,
    start: int = 0,
    derive: Optional[Callable[[bytes, bytes, bytes], bytes]] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    timeout: Optional[float] = None,
    on_progress: Optional[Callable[[int], None]] = None,
    progress_every: int = 5000,
) -> HookHit:
    """Scan salts ``start .. start+max_loop-1`` in order; return the first hit.

    ``derive`` is called once per attempt with (deployer, salt, init_code_hash).
    Raises NoMatchFound after exactly ``max_loop`` attempts, or SearchCancelled
    as soon as ``should_stop`` (or the ``timeout`` deadline) returns true.
    """
    sender = as_address_bytes(deployer)
    ich = keccak(bytes(init_code))
    derive = derive or _create2
    stops = [s for s in (should_stop, deadline_after(timeout) if timeout is not None else None) if s]

    attempts = 0
    for i, salt in iter_salts(max_loop, start):
        if any(stop() for stop in stops):
            raise SearchCancelled(attempts)
        addr = derive(sender, salt, ich)
        attempts += 1
        if matches_flags(addr, mask, required):
            return HookHit(i, "0x" + salt.hex(), to_checksum_address(addr), attempts, describe_flags(addr, mask))
        if on_progress and attempts % progress_every == 0:
            on_progress(attempts)
    raise NoMatchFound(attempts)

def find_salt(deployer: AddressLike, init_code: bytes, max_loop: int = MAX_LOOP, **kwargs) -> bytes:
    """32-byte salt for the lowest matching counter; see mine()."""
    return salt_bytes(mine(deployer, init_code, max_loop, **kwargs).salt_int)

# -------------------------- CLI --------------------------

CONFIG_KEYS = {
    "deployer": "deployer",
    "poolManager": "pool_manager",
    "oink": "oink",
    "creator": "creator",
    "creatorFeeBps": "creator_fee_bps",
    "bytecode": "bytecode",
    "artifact": "artifact",
    "initCode": "init_code",
}

def load_config(path: Optional[str]) -> Dict[str, object]:
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        try:
            obj = json.load(f)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"{path}: invalid JSON: {e}")
    if not isinstance(obj, dict):
        raise click.ClickException(f"{path}: config must be a JSON object")
    unknown = sorted(set(obj) - set(CONFIG_KEYS))
    if unknown:
        raise click.ClickException(f"{path}: unknown config keys: {', '.join(unknown)}")
    return {CONFIG_KEYS[k]: v for k, v in obj.items()}

def merged(opts: Dict[str, object], cfg: Dict[str, object]) -> Dict[str, object]:
    # explicit options (and env vars) win over the config file
    out = dict(cfg)
    out.update({k: v for k, v in opts.items() if v is not None})
    return out

def resolve_init_code(p: Dict[str, object]) -> bytes:
    if p.get("init_code"):
        return to_bytes(str(p["init_code"]))
    if p.get("bytecode"):
        code = to_bytes(str(p["bytecode"]))
    elif p.get("artifact"):
        code = load_bytecode(str(p["artifact"]))
    else:
        raise click.ClickException("Provide one of --init-code / --bytecode / --artifact")
    missing = [k for k in ("pool_manager", "oink", "creator", "creator_fee_bps") if p.get(k) is None]
    if missing:
        opts = ", ".join("--" + k.replace("_", "-") for k in missing)
        raise click.ClickException(f"Missing constructor args: {opts}")
    args = HookConstructorArgs(
        str(p["pool_manager"]), str(p["oink"]), str(p["creator"]), int(str(p["creator_fee_bps"]), 0)
    )
    return build_init_code(code, args, packed=bool(p.get("packed")))

def require_deployer(p: Dict[str, object]) -> str:
    d = p.get("deployer")
    if not d:
        raise click.ClickException("Missing --deployer (or HOOKMINER_DEPLOYER)")
    if not is_address(d):
        raise click.ClickException(f"deployer must be a 0x-prefixed 20-byte address, got {d}")
    return str(d)

def init_code_options(f):
    opts = [
        click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None, help="JSON file with deployment parameters."),
        click.option("--deployer", envvar="HOOKMINER_DEPLOYER", type=str, default=None, help="0x deployer (CREATE2 factory) address."),
        click.option("--init-code", envvar="HOOKMINER_INIT_CODE", type=str, default=None, help="Full init code (0x...), args included."),
        click.option("--bytecode", envvar="HOOKMINER_BYTECODE", type=str, default=None, help="Creation bytecode without args (0x...)."),
        click.option("--artifact", envvar="HOOKMINER_ARTIFACT", type=click.Path(exists=True, dir_okay=False), default=None, help="Compiled artifact JSON (bytecode.object)."),
        click.option("--pool-manager", envvar="HOOKMINER_POOL_MANAGER", type=str, default=None, help="Pool manager address (ctor arg 1)."),
        click.option("--oink", envvar="HOOKMINER_OINK", type=str, default=None, help="Oink token address (ctor arg 2)."),
        click.option("--creator", envvar="HOOKMINER_CREATOR", type=str, default=None, help="Creator address (ctor arg 3)."),
        click.option("--creator-fee-bps", envvar="HOOKMINER_CREATOR_FEE_BPS", type=str, default=None, help="Creator fee in bps (ctor arg 4)."),
        click.option("--packed", is_flag=True, help="Legacy hex-digit concatenation (addresses + minimal fee digits) instead of ABI-encoded ctor args."),
    ]
    for opt in reversed(opts):
        f = opt(f)
    return f

def session_params(config_path, **opts) -> Tuple[str, bytes]:
    p = merged(opts, load_config(config_path))
    deployer = require_deployer(p)
    try:
        return deployer, resolve_init_code(p)
    except (ValueError, OSError) as e:
        raise click.ClickException(str(e))

@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
def cli():
    """hookminer — CREATE2 salt miner for flag-encoded hook addresses."""
    pass

@cli.command("mine")
@init_code_options
@click.option("--max-loop", type=click.IntRange(min=0), default=MAX_LOOP, show_default=True, help="How many salts to scan.")
@click.option("--start", type=click.IntRange(min=0), default=0, show_default=True, help="First salt integer.")
@click.option("--flag", "flag_names", multiple=True, type=click.Choice(sorted(FLAGS)), help="Required flag (repeat). Default: all hook flags.")
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds.")
@click.option("--json", "json_out", type=click.Path(writable=True), default=None, help="Write JSON result.")
@click.option("-q", "--quiet", is_flag=True, help="No progress on stderr.")
def mine_cmd(config_path, max_loop, start, flag_names, timeout, json_out, quiet, **opts):
    """Mine the first salt whose CREATE2 address carries the hook flags."""
    deployer, init_code = session_params(config_path, **opts)
    required = flags_from_names(flag_names) if flag_names else HOOK_FLAGS

    def progress(n):
        if not quiet:
            click.echo(f"... {n}/{max_loop} salts scanned", err=True)

    if not quiet:
        click.echo(f"Mining {max_loop} salts from {start} for flags {hex(required)} (init code hash 0x{keccak(init_code).hex()})", err=True)
    t0 = time.monotonic()
    try:
        hit = mine(deployer, init_code, max_loop, required=required, start=start, timeout=timeout, on_progress=progress)
    except HookMinerError as e:
        raise click.ClickException(str(e))

    resp = {
        "deployer": to_checksum_address(deployer),
        "init_code_hash": "0x" + keccak(init_code).hex(),
        "required_flags": hex(required),
        "elapsed_s": round(time.monotonic() - t0, 3),
        **asdict(hit),
    }
    click.echo(json.dumps(resp, indent=2))
    if json_out:
        with open(json_out, "w", encoding="utf-8") as f:
            json.dump(resp, f, indent=2)
        if not quiet:
            click.echo(f"Wrote JSON: {json_out}", err=True)

@cli.command("address")
@init_code_options
@click.option("--salt-int", type=click.IntRange(min=0), default=None, help="Salt as integer.")
@click.option("--salt-hex", type=str, default=None, help="Salt as hex (0x..., left-padded to 32 bytes).")
def address_cmd(config_path, salt_int, salt_hex, **opts):
    """Compute the CREATE2 address for one salt and report its flags."""
    if (salt_int is None) == (salt_hex is None):
        raise click.ClickException("Provide exactly one of --salt-int / --salt-hex")
    deployer, init_code = session_params(config_path, **opts)
    try:
        salt = salt_bytes(salt_int) if salt_int is not None else pad32(to_bytes(salt_hex))
    except ValueError as e:
        raise click.ClickException(f"Invalid salt: {e}")
    if len(salt) != 32:
        raise click.ClickException("Salt must fit in 32 bytes")
    addr = create2_address(deployer, salt, init_code)
    click.echo(json.dumps({
        "address": to_checksum_address(addr),
        "salt": "0x" + salt.hex(),
        "init_code_hash": "0x" + keccak(init_code).hex(),
        "flags": describe_flags(addr),
        "hook_match": matches_flags(addr),
    }, indent=2))

@cli.command("check")
@click.argument("addresses", nargs=-1, required=True)
@click.option("--flag", "flag_names", multiple=True, type=click.Choice(sorted(FLAGS)), help="Required flag (repeat). Default: all hook flags.")
def check_cmd(addresses, flag_names):
    """Test addresses against the hook flag predicate. Exit 1 if any fails."""
    required = flags_from_names(flag_names) if flag_names else HOOK_FLAGS
    rows = []
    for a in addresses:
        if not is_address(a):
            raise click.ClickException(f"Not an address: {a}")
        rows.append({"address": to_checksum_address(a), "flags": describe_flags(a), "match": matches_flags(a, required=required)})
    click.echo(json.dumps(rows, indent=2))
    if not all(r["match"] for r in rows):
        raise SystemExit(1)

if __name__ == "__main__":
    cli()
