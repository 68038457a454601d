# recipes/docker.py
from __future__ import annotations

import subprocess
from typing import List, Mapping

from ..actions import TOOL_HINTS, StepLog
from ..errors import RecipeError
from .base import is_true, require, split_list


# ---------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------

def docker_command(params: Mapping[str, str]) -> List[str]:
    """
    Build the `docker run` argv for a recipe step.

    Supported parameters:
      image (required), command, working_dir, pull (always|missing|never,
      default missing), rm (default true), volumes, ports (comma separated),
      network, user
    """
    image = require(params, "image", "MissingDockerImage")

    cmd = ["docker", "run"]

    if is_true(params.get("rm"), default=True):
        cmd.append("--rm")

    # "missing" is docker's own default, so only the other two are passed
    pull = params.get("pull", "missing")
    if pull in ("always", "never"):
        cmd.extend(["--pull", pull])

    if params.get("working_dir"):
        cmd.extend(["-w", params["working_dir"]])

    if params.get("user"):
        cmd.extend(["--user", params["user"]])

    if params.get("network"):
        cmd.extend(["--network", params["network"]])

    for vol in split_list(params.get("volumes")):
        cmd.extend(["-v", vol])

    for port in split_list(params.get("ports")):
        cmd.extend(["-p", port])

    cmd.append(image)

    command = params.get("command")
    if command:
        cmd.extend(["sh", "-c", command])

    return cmd


# ---------------------------------------------------------------------
# Recipe
# ---------------------------------------------------------------------

class DockerRecipe:
    """Run a command inside a Docker container."""
    name = "docker"

    def run(self, params: Mapping[str, str], log: StepLog) -> None:
        cmd = docker_command(params)

        log.line(f"Running Docker container: {params['image']}")
        if params.get("command"):
            log.line(f"Command: {params['command']}")

        try:
            proc = subprocess.run(
                cmd,
                shell=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            log.line("Docker is not available")
            raise RecipeError(
                "DockerCommandFailed",
                "Docker is not available",
                hint=TOOL_HINTS["docker"],
            ) from e

        if proc.stdout:
            log.write(proc.stdout.decode("utf-8", errors="replace"))

        if proc.returncode != 0:
            if proc.returncode < 0:
                log.line("Docker command terminated abnormally")
            else:
                log.line(f"Docker command failed with exit code {proc.returncode}")
            raise RecipeError(
                "DockerCommandFailed",
                f"docker run {params['image']} failed",
                exit_code=proc.returncode,
            )

        log.line("Docker container completed successfully")
