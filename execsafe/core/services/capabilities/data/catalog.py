"""
L0 Data — Built-in capability catalog.

Pure data, no logic.  Verified (hand-reviewed) recipes are declared
before community ones so ``verified_fallback`` tries them first.
"""

from __future__ import annotations

from execsafe.core.models.capability import CapabilityDescriptor, InstallRecipe


def _apt(package: str, *, timeout_ms: int = 120_000) -> InstallRecipe:
    """apt recipe: non-interactive sudo first, plain apt-get when already root."""
    return InstallRecipe(
        id=f"apt-{package}",
        method="apt",
        command=(
            f"sudo -n DEBIAN_FRONTEND=noninteractive apt-get install -y {package}"
            f" || DEBIAN_FRONTEND=noninteractive apt-get install -y {package}"
        ),
        verified=True,
        timeout_ms=timeout_ms,
    )


DEFAULT_CAPABILITIES: tuple[CapabilityDescriptor, ...] = (
    CapabilityDescriptor(
        id="rg",
        binary="rg",
        aliases=("ripgrep",),
        description="Fast text search (ripgrep).",
        install_recipes=(_apt("ripgrep"),),
    ),
    CapabilityDescriptor(
        id="jq",
        binary="jq",
        description="JSON CLI processor.",
        install_recipes=(_apt("jq"),),
    ),
    CapabilityDescriptor(
        id="yt-dlp",
        binary="yt-dlp",
        description="Media downloader.",
        install_recipes=(
            _apt("yt-dlp", timeout_ms=180_000),
            InstallRecipe(
                id="pip-yt-dlp",
                method="pip",
                command="python3 -m pip install --user yt-dlp",
                verified=False,
                timeout_ms=180_000,
                verify_command="yt-dlp --version",
                run_in_container=True,
            ),
        ),
    ),
    CapabilityDescriptor(
        id="ffmpeg",
        binary="ffmpeg",
        description="Video/audio processing.",
        install_recipes=(_apt("ffmpeg", timeout_ms=180_000),),
    ),
    CapabilityDescriptor(
        id="wget",
        binary="wget",
        description="HTTP downloader.",
        install_recipes=(_apt("wget"),),
    ),
    CapabilityDescriptor(
        id="pnpm",
        binary="pnpm",
        description="Node package manager.",
        install_recipes=(
            InstallRecipe(
                id="npm-pnpm",
                method="npm",
                command="npm install -g pnpm",
                verified=False,
                timeout_ms=180_000,
                verify_command="pnpm --version",
            ),
        ),
    ),
    CapabilityDescriptor(
        id="tree",
        binary="tree",
        description="Directory tree visualizer.",
        install_recipes=(_apt("tree"),),
    ),
    CapabilityDescriptor(
        id="fd",
        binary="fd",
        aliases=("fdfind",),
        description="Fast find alternative.",
        install_recipes=(_apt("fd-find"),),
    ),
)
