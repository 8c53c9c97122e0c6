"""External render/extract/convert jobs behind a typed result.

Every external tool is invoked through :func:`run_command`, which never raises
for a failed or missing binary: it returns a :class:`CommandResult` instead.
:class:`ExternalTools` wraps the individual command lines and accepts an
injectable runner so tests can replace the binaries with fakes.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import fitz  # PyMuPDF

from .errors import ToolExecutionFailure, ToolUnavailable

DEFAULT_RENDER_DPI = 200


@dataclass
class CommandResult:
    ok: bool
    returncode: Optional[int]
    output_path: Optional[Path] = None
    reason: str = ""
    stdout: str = ""

    def raise_for_failure(self) -> "CommandResult":
        if not self.ok and self.returncode is None:
            raise ToolUnavailable(self.reason or "external command could not be started")
        if not self.ok:
            raise ToolExecutionFailure(self.reason or "external command failed")
        return self


Runner = Callable[..., CommandResult]


def output_is_valid(path: Path, min_bytes: int = 0) -> bool:
    try:
        return path.is_file() and path.stat().st_size > min_bytes
    except OSError:
        return False


def run_command(args: Sequence[str], expected_output: Optional[Path] = None,
                min_bytes: int = 0) -> CommandResult:
    """Run *args* to completion; success means exit 0 plus the expected file."""
    command = [str(arg) for arg in args]
    logging.debug("Running: %s", " ".join(command))
    try:
        completed = subprocess.run(command, capture_output=True, text=True, errors="replace",
                                   check=False)
    except FileNotFoundError:
        return CommandResult(ok=False, returncode=None, reason=f"command not found: {command[0]}")
    except OSError as exc:
        return CommandResult(ok=False, returncode=None, reason=f"{command[0]}: {exc}")

    if completed.returncode != 0:
        stderr = (completed.stderr or "").strip().splitlines()
        detail = stderr[-1] if stderr else ""
        return CommandResult(
            ok=False,
            returncode=completed.returncode,
            reason=f"{command[0]} exited with {completed.returncode} {detail}".strip(),
            stdout=completed.stdout or "",
        )
    if expected_output is not None and not output_is_valid(expected_output, min_bytes):
        return CommandResult(
            ok=False,
            returncode=completed.returncode,
            reason=f"{command[0]} produced no usable output at {expected_output}",
            stdout=completed.stdout or "",
        )
    return CommandResult(ok=True, returncode=completed.returncode,
                         output_path=expected_output, stdout=completed.stdout or "")


class ExternalTools:
    """Command lines for poppler, djvulibre and LibreOffice."""

    def __init__(self, runner: Runner = run_command, render_dpi: int = DEFAULT_RENDER_DPI) -> None:
        self.runner = runner
        self.render_dpi = render_dpi

    def pdf_page_count(self, pdf_path: Path) -> int:
        try:
            with fitz.open(pdf_path) as doc:
                return doc.page_count
        except (RuntimeError, OSError, ValueError) as exc:
            logging.warning("Could not count pages of %s: %s", pdf_path, exc)
            return 0

    def djvu_page_count(self, djvu_path: Path) -> int:
        result = self.runner(["djvused", "-e", "n", str(djvu_path)])
        if not result.ok:
            logging.warning("Could not count pages of %s: %s", djvu_path, result.reason)
            return 0
        lines = result.stdout.strip().splitlines()
        try:
            return max(0, int(lines[0].strip())) if lines else 0
        except ValueError:
            return 0

    def render_pdf_page(self, pdf_path: Path, page: int, output_png: Path) -> CommandResult:
        # -singlefile writes exactly <prefix>.png without pdftoppm's own page suffix.
        prefix = output_png.with_suffix("")
        return self.runner(
            ["pdftoppm", "-png", "-r", str(self.render_dpi), "-f", str(page), "-l", str(page),
             "-singlefile", str(pdf_path), str(prefix)],
            expected_output=output_png,
        )

    def render_djvu_page(self, djvu_path: Path, page: int, output_png: Path,
                         min_bytes: int = 0) -> CommandResult:
        return self.runner(
            ["ddjvu", "-format=png", f"-page={page}", str(djvu_path), str(output_png)],
            expected_output=output_png,
            min_bytes=min_bytes,
        )

    def extract_pdf_images(self, pdf_path: Path, output_dir: Path) -> CommandResult:
        return self.runner(["pdfimages", "-all", str(pdf_path), str(output_dir / "img")])

    def extract_djvu_background(self, djvu_path: Path, page: int, output_file: Path,
                                min_bytes: int = 0) -> CommandResult:
        return self.runner(
            ["djvuextract", str(djvu_path), f"BG44={output_file}", f"-page={page}"],
            expected_output=output_file,
            min_bytes=min_bytes,
        )

    def convert_document(self, source: Path, output_dir: Path, target_format: str,
                         min_bytes: int = 0) -> CommandResult:
        output_dir.mkdir(parents=True, exist_ok=True)
        result = self.runner(["soffice", "--headless", "--convert-to", target_format,
                              "--outdir", str(output_dir), str(source)])
        if not result.ok:
            return result
        converted: List[Path] = sorted(output_dir.glob(f"*.{target_format}"))
        for candidate in converted:
            if output_is_valid(candidate, min_bytes):
                return CommandResult(ok=True, returncode=result.returncode, output_path=candidate)
        return CommandResult(
            ok=False,
            returncode=result.returncode,
            reason=f"soffice produced no usable .{target_format} for {source.name}",
        )
