"""Command line entry point for fencryption.

Run with ``fencryption <command>`` once installed, or ``python main.py <command>``
from the project root:

    fencryption encrypt notes.txt photos/ --delete-original
    fencryption decrypt notes.txt.enc photos.pack
    fencryption open photos.pack
    fencryption encrypt-text "hello" --copy
"""

from __future__ import annotations

import argparse
import logging
from typing import Callable, List, Optional

from fencryption.config import get_settings
from fencryption.core.actions import decrypt_text, encrypt_text, pack_directory
from fencryption.core.batch import BatchDecryptor, BatchEncryptor
from fencryption.core.exceptions import FencryptionError
from fencryption.core.reseal import InteractiveReseal, ResealOutcome
from .clipboard import copy_to_clipboard
from .formatting import human_duration
from .logging_config import configure_logging
from .prompt import prompt_passphrase
from .reporter import Reporter


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fencryption",
        description="Encrypt files and directories with a passphrase.",
    )
    parser.add_argument("--debug", action="store_true", help="Show per-entry paths and error details")
    sub = parser.add_subparsers(dest="command", required=True)

    enc = sub.add_parser("encrypt", help="Encrypt files and directories")
    enc.add_argument("paths", nargs="+", help="Paths of the file(s)/directory(ies) to encrypt")
    enc.add_argument("-o", "--output-path", help="Output path (only with a single input path)")
    enc.add_argument("-O", "--overwrite", action="store_true", help="Overwrite existing output")
    enc.add_argument(
        "-d", "--delete-original", action="store_true", help="Delete original directories after encrypting"
    )

    dec = sub.add_parser("decrypt", help="Decrypt .enc files and .pack files")
    dec.add_argument("paths", nargs="+", help="Paths of the file(s) to decrypt")
    dec.add_argument("-o", "--output-path", help="Output path (only with a single input path)")
    dec.add_argument("-O", "--overwrite", action="store_true", help="Overwrite existing output")

    pack = sub.add_parser("pack", help="Encrypt one directory into a .pack file")
    pack.add_argument("path", help="Directory to pack")
    pack.add_argument("-O", "--overwrite", action="store_true", help="Overwrite an existing pack")
    pack.add_argument(
        "-d", "--delete-original", action="store_true", help="Delete the directory after packing"
    )

    opn = sub.add_parser("open", aliases=["unpack"], help="Open a pack for editing, then update or discard it")
    opn.add_argument("path", help="Pack file to open")
    opn.add_argument("-O", "--overwrite", action="store_true", help="Replace an existing working directory")

    etext = sub.add_parser("encrypt-text", help="Encrypt a short text, print it base64 encoded")
    etext.add_argument("text", help="Text to encrypt")
    etext.add_argument("-c", "--copy", action="store_true", help="Copy the result to the clipboard")

    dtext = sub.add_parser("decrypt-text", help="Decrypt a base64 encoded value")
    dtext.add_argument("data", help="Base64 data to decrypt")

    return parser


def _cmd_encrypt(args, reporter: Reporter, ask: Callable[..., str]) -> int:
    key = ask(confirm=True)
    reporter.info("Encrypting...")
    result = BatchEncryptor().run(
        args.paths, args.output_path, key, overwrite=args.overwrite, delete_original=args.delete_original
    )
    reporter.batch(result, "Encrypted", "encrypt")
    return EXIT_FAILURE if result.failed else EXIT_OK


def _cmd_decrypt(args, reporter: Reporter, ask: Callable[..., str]) -> int:
    key = ask()
    reporter.info("Decrypting...")
    result = BatchDecryptor().run(args.paths, args.output_path, key, overwrite=args.overwrite)
    reporter.batch(result, "Decrypted", "decrypt")
    return EXIT_FAILURE if result.failed else EXIT_OK


def _cmd_pack(args, reporter: Reporter, ask: Callable[..., str]) -> int:
    key = ask(confirm=True)
    elapsed, output = pack_directory(args.path, key, args.delete_original, args.overwrite)
    reporter.success(f"Created pack {output} in {human_duration(elapsed)}")
    return EXIT_OK


def _cmd_open(args, reporter: Reporter, ask: Callable[..., str], await_decision=None) -> int:
    if await_decision is None:
        # imported lazily: Textual is only needed for the interactive command
        from .decision import await_keypress as await_decision

    session = InteractiveReseal(args.path, ask(), overwrite=args.overwrite)

    def _decide(s: InteractiveReseal) -> str:
        reporter.success(f"Decrypted pack in {human_duration(s.open_elapsed)}")
        reporter.info(f"Working directory: {s.working_dir}")
        return await_decision(s)

    outcome = session.run(_decide)
    if outcome is ResealOutcome.UPDATED:
        reporter.success("Updated pack")
    else:
        reporter.info("Discarded changes")
    return EXIT_OK


def _cmd_encrypt_text(args, reporter: Reporter, ask: Callable[..., str]) -> int:
    encoded = encrypt_text(ask(confirm=True), args.text)
    print(encoded, file=reporter.stream)
    if args.copy:
        if copy_to_clipboard(encoded):
            reporter.success("Copied to clipboard")
        else:
            reporter.error("Could not copy to clipboard")
    return EXIT_OK


def _cmd_decrypt_text(args, reporter: Reporter, ask: Callable[..., str]) -> int:
    result = decrypt_text(ask(), args.data)
    reporter.success("Decryption result:")
    print(f"- byte array result: {list(result.raw)}", file=reporter.stream)
    print(f"- base 64 encoded result: {result.base64}", file=reporter.stream)
    utf8 = result.utf8 if result.utf8 is not None else "Invalid utf8 sequence"
    print(f"- utf8 encoded result: {utf8}", file=reporter.stream)
    return EXIT_OK


COMMANDS = {
    "encrypt": _cmd_encrypt,
    "decrypt": _cmd_decrypt,
    "pack": _cmd_pack,
    "open": _cmd_open,
    "unpack": _cmd_open,
    "encrypt-text": _cmd_encrypt_text,
    "decrypt-text": _cmd_decrypt_text,
}


def main(
    argv: Optional[List[str]] = None,
    reporter: Optional[Reporter] = None,
    ask: Callable[..., str] = prompt_passphrase,
) -> int:
    args = build_parser().parse_args(argv)
    reporter = reporter or Reporter(debug=args.debug)
    reporter.debug = reporter.debug or args.debug

    try:
        configure_logging(logging.DEBUG if args.debug else get_settings().log_level)
        logger.debug("Running command %s", args.command)
        return COMMANDS[args.command](args, reporter, ask)
    except FencryptionError as e:
        reporter.exception(e)
    except KeyboardInterrupt:
        reporter.error("Interrupted")
    return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
