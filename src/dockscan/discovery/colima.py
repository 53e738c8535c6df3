"""Reads `colima status --json` to enrich engine info for Colima backends."""

from __future__ import annotations

import asyncio
import json
import shutil

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dockscan.infrastructure.config import COLIMA_STATUS_TIMEOUT_S
from dockscan.infrastructure.logger import logger


class ColimaStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vm_type: str | None = Field(default=None, alias="vmType")
    memory_gib: int | None = Field(default=None, alias="memory")
    arch: str | None = None
    runtime: str | None = None
    mount_type: str | None = Field(default=None, alias="mountType")


def parse_colima_status(raw: bytes | str) -> ColimaStatus | None:
    try:
        data = json.loads(raw)
        return ColimaStatus.model_validate(data)
    except (json.JSONDecodeError, ValidationError, TypeError):
        return None


async def fetch_colima_status(binary: str | None = None) -> ColimaStatus | None:
    """Run the colima CLI and parse its status. Any failure yields None."""
    colima_bin = binary or shutil.which("colima")
    if not colima_bin:
        return None

    try:
        proc = await asyncio.create_subprocess_exec(
            colima_bin, "status", "--json",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as err:
        logger.debug("Could not launch colima", error=str(err))
        return None

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=COLIMA_STATUS_TIMEOUT_S)
    except asyncio.TimeoutError:
        logger.debug("colima status timed out")
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        return None

    if proc.returncode != 0:
        logger.debug("colima status failed", code=proc.returncode, stderr=stderr.decode(errors="replace").strip())
        return None
    return parse_colima_status(stdout)
