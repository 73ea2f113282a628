"""
cell_abi.cli.main
=================

`cell-abi`: offline ABI tooling for tree-of-cells contracts.

Examples
--------
    $ cell-abi parse-type 'map(address,uint128)[]'
    $ cell-abi boc-hash te6ccgEBAQEAAgAAAA==
    $ cell-abi pack --params '[{"name":"a","type":"uint8"}]' --tokens '{"a":"7"}'
    $ cell-abi unpack --params @params.json --boc <base64> --allow-partial
    $ cell-abi encode-input --abi @wallet.abi.json --method transfer --input @args.json
    $ cell-abi decode-transaction --abi @wallet.abi.json --tx @tx.json --method '["transfer","burn"]'

Any value argument written as ``@path`` is read from that file.

Results are printed as JSON on stdout; failures go to stderr with exit
code 1.

Configuration
-------------
- Log level   : `--log-level` or env `CELL_ABI_LOG_LEVEL` (default: WARNING)
- JSON logs   : `--json-logs` or env `CELL_ABI_LOG_JSON`
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .. import api
from ..abi.types import parse_param
from ..errors import AbiKitError
from ..logging import configure
from ..version import __version__

app = typer.Typer(
    name="cell-abi",
    help="ABI toolkit for tree-of-cells contracts: types, BOCs, call bodies, transactions.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main", "run"]


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def _arg(value: str) -> str:
    """Literal text, or the contents of a file when written as @path."""
    if value.startswith("@"):
        path = Path(value[1:])
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise typer.BadParameter(f"File not found: {path}") from e
    return value


def _emit(result: Dict[str, Any]) -> None:
    if result["type"] == "err":
        typer.echo(f"error: {result['data']}", err=True)
        raise typer.Exit(code=1)
    _print_json(result["data"])


@app.callback()
def _root(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level.", envvar="CELL_ABI_LOG_LEVEL"
    ),
    json_logs: Optional[bool] = typer.Option(
        None, "--json-logs/--text-logs", help="Emit logs as JSON lines."
    ),
) -> None:
    configure(json=json_logs, level=log_level)


@app.command("version")
def version() -> None:
    """Print the toolkit version."""
    typer.echo(f"cell-abi {__version__}")


@app.command("parse-type")
def parse_type_cmd(
    descriptor: str = typer.Argument(..., help="Type descriptor, e.g. 'uint8[][3]'"),
    components: Optional[str] = typer.Option(
        None, "--components", help="JSON array of component params for tuple types."
    ),
) -> None:
    """Parse a type descriptor and print its canonical signature and size."""
    try:
        comps: List[Any] = json.loads(_arg(components)) if components else []
        param = parse_param({"name": "value", "type": descriptor, "components": comps})
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid components JSON: {e}") from e
    except AbiKitError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    kind = param.kind
    size = getattr(kind, "max_size", None)
    _print_json(
        {
            "signature": kind.signature,
            "maxSize": list(size) if size is not None else None,
        }
    )


@app.command("boc-hash")
def boc_hash(boc: str = typer.Argument(..., help="Base64 BOC (or @file)")) -> None:
    """Print the representation hash of a BOC's root cell."""
    _emit(api.get_boc_hash(_arg(boc).strip()))


@app.command("pack")
def pack(
    params: str = typer.Option(..., "--params", help="JSON params list (or @file)"),
    tokens: str = typer.Option(..., "--tokens", help="JSON values (or @file)"),
) -> None:
    """Pack values into a cell and print it as a base64 BOC."""
    _emit(api.pack_into_cell(_arg(params), _arg(tokens)))


@app.command("unpack")
def unpack(
    params: str = typer.Option(..., "--params", help="JSON params list (or @file)"),
    boc: str = typer.Option(..., "--boc", help="Base64 BOC (or @file)"),
    allow_partial: bool = typer.Option(False, "--allow-partial", help="Ignore trailing data."),
) -> None:
    """Unpack values from a base64 BOC."""
    _emit(api.unpack_from_cell(_arg(params), _arg(boc).strip(), allow_partial))


@app.command("encode-input")
def encode_input(
    abi: str = typer.Option(..., "--abi", help="Contract ABI JSON (or @file)"),
    method: str = typer.Option(..., "--method", help="Function name"),
    input: str = typer.Option("{}", "--input", help="JSON input values (or @file)"),
) -> None:
    """Encode an internal call body."""
    _emit(api.encode_internal_input(_arg(abi), method, _arg(input)))


@app.command("decode-input")
def decode_input(
    abi: str = typer.Option(..., "--abi", help="Contract ABI JSON (or @file)"),
    body: str = typer.Option(..., "--body", help="Base64 message body (or @file)"),
    method: str = typer.Option(..., "--method", help='JSON name or candidate list, e.g. \'"transfer"\''),
    internal: bool = typer.Option(False, "--internal", help="Body is an internal call."),
) -> None:
    """Decode a call body; prints null when no candidate matches."""
    _emit(api.decode_input(_arg(body).strip(), _arg(abi), method, internal))


@app.command("decode-transaction")
def decode_transaction(
    abi: str = typer.Option(..., "--abi", help="Contract ABI JSON (or @file)"),
    tx: str = typer.Option(..., "--tx", help="Transaction JSON (or @file)"),
    method: str = typer.Option(..., "--method", help="JSON name or candidate list"),
) -> None:
    """Decode the call and return value of a transaction."""
    _emit(api.decode_transaction(_arg(tx), _arg(abi), method))


@app.command("decode-events")
def decode_events(
    abi: str = typer.Option(..., "--abi", help="Contract ABI JSON (or @file)"),
    tx: str = typer.Option(..., "--tx", help="Transaction JSON (or @file)"),
) -> None:
    """List every event emitted by a transaction that decodes against the ABI."""
    _emit(api.decode_transaction_events(_arg(tx), _arg(abi)))


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        rv = app(prog_name="cell-abi", standalone_mode=False, args=argv)
        return rv if isinstance(rv, int) else 0
    except typer.Exit as e:
        return int(e.exit_code)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        return 1


def run(argv: Optional[list[str]] = None) -> int:
    """Alias for :func:`main`."""
    return main(argv)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
