from __future__ import annotations

import os
import shlex
import shutil

_SESSION_TARGET_FLAGS = {"-u", "--browserUrl", "-w", "--wsEndpoint", "--userDataDir"}
_EXECUTABLE_FLAGS = {"-e", "--executablePath"}


def server_args(args_str: str, chrome_path: str = "", headless: bool = False) -> list[str]:
    """Arguments for one chrome-devtools-mcp process.

    Every voice session gets its own ``--isolated`` browser unless the caller
    already points the server at a specific browser or profile.
    """
    args = shlex.split(args_str, posix=os.name != "nt")

    has_custom_session_target = any(
        token in _SESSION_TARGET_FLAGS or token.split("=", 1)[0] in _SESSION_TARGET_FLAGS
        for token in args
    )
    if "--isolated" not in args and not has_custom_session_target:
        args.append("--isolated")

    if headless and "--headless" not in args and not any(a.startswith("--headless=") for a in args):
        args.append("--headless")

    has_executable_arg = any(
        token in _EXECUTABLE_FLAGS or token.split("=", 1)[0] in _EXECUTABLE_FLAGS for token in args
    )
    if not has_executable_arg:
        browser_executable = resolve_browser_executable(chrome_path)
        if browser_executable:
            args.extend(["--executablePath", browser_executable])

    return args


def resolve_browser_executable(configured: str = "") -> str | None:
    configured = configured.strip().strip('"')
    if configured and os.path.exists(configured):
        return configured

    if os.name == "nt":
        local_app_data = os.getenv("LOCALAPPDATA", "")
        program_files = os.getenv("ProgramFiles", "C:\\Program Files")
        program_files_x86 = os.getenv("ProgramFiles(x86)", "C:\\Program Files (x86)")
        candidates = [
            os.path.join(program_files, "Google", "Chrome", "Application", "chrome.exe"),
            os.path.join(program_files_x86, "Google", "Chrome", "Application", "chrome.exe"),
            os.path.join(local_app_data, "Google", "Chrome", "Application", "chrome.exe"),
            os.path.join(program_files, "Microsoft", "Edge", "Application", "msedge.exe"),
            os.path.join(program_files_x86, "Microsoft", "Edge", "Application", "msedge.exe"),
        ]
    else:
        candidates = [
            "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
            "/usr/bin/google-chrome",
            "/usr/bin/google-chrome-stable",
            "/usr/bin/chromium",
            "/usr/bin/chromium-browser",
        ]
    for candidate in candidates:
        if candidate and os.path.exists(candidate):
            return candidate
    # chrome-devtools-mcp finds a stable Chrome on its own.
    return None


def resolve_command(command: str) -> str:
    candidate = command.strip().strip('"')
    resolved = shutil.which(candidate)
    if resolved and os.name == "nt" and resolved.lower().endswith(".ps1"):
        cmd_candidate = resolved[:-4] + ".cmd"
        if os.path.exists(cmd_candidate):
            return cmd_candidate
    if resolved:
        return resolved
    if os.name == "nt" and not candidate.lower().endswith(".cmd"):
        resolved_cmd = shutil.which(f"{candidate}.cmd")
        if resolved_cmd:
            return resolved_cmd
    raise RuntimeError(
        f"MCP server command not found: {command}. Ensure Node.js/npx is installed and available in PATH."
    )
