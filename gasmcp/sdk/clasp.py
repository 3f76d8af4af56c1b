"""Local project workflows through the clasp command-line tool.

Every clasp call is a subprocess with an argument list (no shell) and a
fixed timeout. Non-zero exit, a missing executable and timeouts all raise
SubprocessError carrying the command, exit code and stderr; nothing is
retried. Login is the one interactive flow: it inherits the terminal so
the user can complete the browser consent.

clasp prints human-oriented text. The parsers below match the line formats
we know about and report anything else in ``unparsed_lines`` with
``format_recognized=False`` so a changed clasp release shows up as a
warning instead of silently empty results.
"""

import json
import logging
import re
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .exceptions import ConfigNotFoundError, SubprocessError, ValidationError
from .validators import validate_script_id

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("development", "staging", "production")
PROJECT_TYPES = ("standalone", "webapp", "api", "sheets", "docs", "slides", "forms")
CLASP_CONFIG = ".clasp.json"
CLASP_BACKUP = ".clasp.backup.json"
CLASP_PACKAGE = "@google/clasp"
DEFAULT_TIMEOUT = 30
INSTALL_TIMEOUT = 300
LOGIN_HINT = "Run 'gasmcp clasp-login' in a terminal to log in to clasp."


@dataclass
class CommandResult:
    success: bool
    stdout: str
    stderr: str
    command: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ParsedOutput:
    items: list = field(default_factory=list)
    format_recognized: bool = True
    unparsed_lines: list = field(default_factory=list)


# =============================================================================
# Output parsers
# =============================================================================

LIST_URL_LINE = re.compile(
    r"^(?:[>*-]\s*)?(?P<name>.+?)\s+[-–]\s+https://script\.google\.com/d/(?P<id>[\w-]+)/edit\s*$"
)
LIST_ID_LINE = re.compile(r"^(?:[>*-]\s*)?(?P<name>.+?)\s*–\s*(?P<id>[\w-]{10,})\s*$")
LIST_NOISE = re.compile(r"^(Found \d+ scripts?\.?|No script files found\.?|Listing scripts.*)$", re.I)

PULL_FILE_LINE = re.compile(r"^\s*[└├]─\s*(?P<file>\S.*?)\s*$")
PULL_NOISE = re.compile(r"^(Cloned|Pulled|Pushed) \d+ files?\.?$|^Warning:", re.I)

DEPLOY_LINE = re.compile(r"^-\s+(?P<id>[\w-]{10,})\s+@(?P<version>\d+|HEAD)\.?\s*$")
DEPLOY_URL = re.compile(r"https://script\.google\.com/macros/s/[\w-]+/\w+")
DEPLOY_NOISE = re.compile(r"^(Created version \d+\.?|Deployed .*|\d+ Deployments?\.?)$", re.I)

EMAIL = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")


def _parse_lines(output: str, matchers, noise, what: str) -> ParsedOutput:
    result = ParsedOutput()
    for line in (output or "").splitlines():
        stripped = line.strip()
        if not stripped or noise.match(stripped):
            continue
        for pattern, build in matchers:
            match = pattern.match(stripped)
            if match:
                result.items.append(build(match))
                break
        else:
            result.unparsed_lines.append(stripped)

    if result.unparsed_lines:
        result.format_recognized = False
        logger.warning(
            f"Unrecognized clasp {what} output ({len(result.unparsed_lines)} lines); "
            "clasp's output format may have changed"
        )
    return result


def parse_list_output(output: str) -> ParsedOutput:
    """Projects from `clasp list` as {name, scriptId}."""
    def build(m):
        return {"name": m.group("name").strip(), "scriptId": m.group("id")}
    return _parse_lines(output, [(LIST_URL_LINE, build), (LIST_ID_LINE, build)], LIST_NOISE, "list")


def parse_pull_output(output: str) -> ParsedOutput:
    """File names from `clasp pull` tree lines."""
    return _parse_lines(output, [(PULL_FILE_LINE, lambda m: m.group("file"))], PULL_NOISE, "pull")


def parse_deploy_output(output: str) -> ParsedOutput:
    """Deployments from `clasp deploy` as {deploymentId, version}."""
    result = ParsedOutput()
    for line in (output or "").splitlines():
        stripped = line.strip()
        if not stripped or DEPLOY_NOISE.match(stripped) or DEPLOY_URL.search(stripped):
            continue
        match = DEPLOY_LINE.match(stripped)
        if match:
            result.items.append({"deploymentId": match.group("id"), "version": match.group("version")})
        else:
            result.unparsed_lines.append(stripped)
    if result.unparsed_lines:
        result.format_recognized = False
        logger.warning(f"Unrecognized clasp deploy output ({len(result.unparsed_lines)} lines)")
    return result


def extract_deploy_url(output: str) -> Optional[str]:
    match = DEPLOY_URL.search(output or "")
    return match.group(0) if match else None


def parse_status_output(output: str) -> dict:
    """`key: value` lines from `clasp status` into a dict with snake_case keys."""
    status = {}
    for line in (output or "").splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = re.sub(r"\s+", "_", key.strip().lower())
        if key:
            status[key] = value.strip()
    return status


# =============================================================================
# Project templates
# =============================================================================

def _manifest(webapp_access: Optional[str] = None) -> str:
    manifest = {
        "timeZone": "Etc/UTC",
        "dependencies": {"enabledAdvancedServices": []},
        "exceptionLogging": "STACKDRIVER",
        "runtimeVersion": "V8",
    }
    if webapp_access:
        manifest["webapp"] = {"access": webapp_access, "executeAs": "USER_DEPLOYING"}
    return json.dumps(manifest, indent=2)


TEMPLATES = {
    "standalone": {
        "Code.js": (
            "/**\n * Google Apps Script project created with clasp.\n */\n\n"
            "function myFunction() {\n  console.log('Hello, Google Apps Script!');\n}\n"
        ),
        "appsscript.json": _manifest(),
    },
    "webapp": {
        "Code.js": (
            "function doGet(e) {\n"
            "  return HtmlService.createHtmlOutputFromFile('index').setTitle('My Web App');\n"
            "}\n\n"
            "function doPost(e) {\n"
            "  var data = JSON.parse(e.postData.contents);\n"
            "  return ContentService\n"
            "    .createTextOutput(JSON.stringify({status: 'success', data: data}))\n"
            "    .setMimeType(ContentService.MimeType.JSON);\n"
            "}\n"
        ),
        "index.html": (
            "<!DOCTYPE html>\n<html>\n  <head>\n    <base target=\"_top\">\n"
            "    <title>My Web App</title>\n  </head>\n  <body>\n"
            "    <h1>Google Apps Script Web App</h1>\n  </body>\n</html>\n"
        ),
        "appsscript.json": _manifest("ANYONE_ANONYMOUS"),
    },
    "api": {
        "Code.js": (
            "function doGet(e) {\n"
            "  var action = e.parameter.action;\n"
            "  if (action === 'getData') {\n"
            "    return json_({timestamp: new Date().toISOString(), params: e.parameter});\n"
            "  }\n"
            "  return json_({error: 'Invalid action'});\n"
            "}\n\n"
            "function json_(payload) {\n"
            "  return ContentService\n"
            "    .createTextOutput(JSON.stringify(payload))\n"
            "    .setMimeType(ContentService.MimeType.JSON);\n"
            "}\n"
        ),
        "appsscript.json": _manifest("ANYONE"),
    },
}


# =============================================================================
# Runner
# =============================================================================

class ClaspRunner:
    """Runs clasp (and npm for installation) as subprocesses."""

    def __init__(self, binary: str = "clasp", timeout: int = DEFAULT_TIMEOUT, working_dir: Optional[str] = None):
        self.binary = binary
        self.timeout = timeout
        self.working_dir = Path(working_dir) if working_dir else None

    def _base_dir(self) -> Path:
        return self.working_dir or Path.cwd()

    def execute(
        self,
        command: list,
        cwd: Optional[Path] = None,
        interactive: bool = False,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """
        Run one command.

        Interactive commands inherit stdin/stdout/stderr and have no timeout.

        Raises:
            SubprocessError: On non-zero exit, timeout, or missing executable
        """
        command_str = shlex.join(str(part) for part in command)
        logger.debug(f"Running: {command_str} (cwd={cwd})")
        try:
            completed = subprocess.run(
                [str(part) for part in command],
                cwd=str(cwd) if cwd else None,
                capture_output=not interactive,
                text=True,
                timeout=None if interactive else (timeout or self.timeout),
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise SubprocessError(
                f"Command timed out after {e.timeout}s: {command_str}", command=command_str
            ) from e
        except FileNotFoundError as e:
            raise SubprocessError(
                f"Executable not found: {command[0]}. Is it installed and on PATH?", command=command_str
            ) from e

        stdout = completed.stdout or ""
        stderr = completed.stderr or ""
        if completed.returncode != 0:
            raise SubprocessError(
                f"Command failed: {command_str}\nExit code: {completed.returncode}\nStderr: {stderr.strip()}",
                command=command_str,
                returncode=completed.returncode,
                stderr=stderr,
            )
        return CommandResult(success=True, stdout=stdout, stderr=stderr, command=command_str)

    def run(self, args: list, cwd: Optional[Path] = None, interactive: bool = False) -> CommandResult:
        """Run `clasp <args>`."""
        return self.execute([self.binary] + list(args), cwd=cwd, interactive=interactive)

    # -------------------------------------------------------------------------
    # Environments
    # -------------------------------------------------------------------------

    def switch_environment(self, project_dir, environment: str) -> Path:
        """
        Make .clasp.<environment>.json the active .clasp.json.

        The previous .clasp.json is copied to .clasp.backup.json when possible.

        Raises:
            ValidationError: Unknown environment name
            ConfigNotFoundError: The environment file does not exist
        """
        if environment not in ENVIRONMENTS:
            raise ValidationError(
                f"Invalid environment '{environment}'. Valid options: {', '.join(ENVIRONMENTS)}"
            )
        project_dir = Path(project_dir)
        env_file = project_dir / f".clasp.{environment}.json"
        active = project_dir / CLASP_CONFIG
        if not env_file.is_file():
            raise ConfigNotFoundError(f"Environment config not found: {env_file}")

        try:
            shutil.copyfile(active, project_dir / CLASP_BACKUP)
        except OSError as e:
            logger.debug(f"No backup of {active} made: {e}")

        shutil.copyfile(env_file, active)
        logger.info(f"Switched {project_dir} to environment '{environment}'")
        return active

    # -------------------------------------------------------------------------
    # Installation and login
    # -------------------------------------------------------------------------

    def is_installed(self) -> bool:
        try:
            self.run(["--version"])
        except SubprocessError:
            return False
        return True

    def install_clasp(self) -> dict:
        logger.info(f"Installing {CLASP_PACKAGE} globally with npm")
        result = self.execute(["npm", "install", "-g", CLASP_PACKAGE], timeout=INSTALL_TIMEOUT)
        return {"status": "installed", "output": result.stdout}

    def get_version(self) -> str:
        return self.run(["--version"]).stdout.strip()

    def check_login_status(self) -> dict:
        try:
            result = self.run(["login", "--status"])
        except SubprocessError as e:
            return {"logged_in": False, "error": str(e)}
        output = result.stdout.strip()
        if "not logged in" in output.lower():
            return {"logged_in": False, "user_info": output}
        return {"logged_in": True, "user_info": output}

    def list_accounts(self) -> dict:
        """Accounts clasp reports as logged in."""
        status = self.check_login_status()
        accounts = sorted(set(EMAIL.findall(status.get("user_info", "")))) if status["logged_in"] else []
        return {"logged_in": status["logged_in"], "accounts": accounts, "raw": status.get("user_info", "")}

    def login(self, no_localhost: bool = False, creds: Optional[str] = None) -> dict:
        """Interactive `clasp login`; hands the terminal to clasp."""
        args = ["login"]
        if no_localhost:
            args.append("--no-localhost")
        if creds:
            args.extend(["--creds", creds])
        self.run(args, interactive=True)
        return {"status": "logged_in"}

    def setup(
        self,
        auto_install: bool = True,
        auto_login: bool = True,
        allow_interactive: bool = True,
        no_localhost: bool = False,
        creds: Optional[str] = None,
    ) -> dict:
        """
        Make sure clasp is installed and logged in.

        With allow_interactive=False a missing login is reported as
        'login_required' instead of starting the interactive flow.
        """
        results = {"installation": None, "version": None, "login": None, "status": "success"}

        if self.is_installed():
            results["installation"] = {"status": "already_installed"}
        elif auto_install:
            results["installation"] = self.install_clasp()
        else:
            raise SubprocessError(f"clasp is not installed. Install it with: npm install -g {CLASP_PACKAGE}")

        results["version"] = self.get_version()

        login_status = self.check_login_status()
        if login_status["logged_in"]:
            results["login"] = {"status": "already_logged_in", "user": login_status.get("user_info")}
        elif auto_login and allow_interactive:
            results["login"] = self.login(no_localhost=no_localhost, creds=creds)
        else:
            results["login"] = {"status": "login_required", "hint": LOGIN_HINT}
            results["status"] = "login_required"

        logger.info(f"clasp setup finished: {results['status']}")
        return results

    # -------------------------------------------------------------------------
    # Project workflows
    # -------------------------------------------------------------------------

    def read_clasp_config(self, project_dir) -> dict:
        config_path = Path(project_dir) / CLASP_CONFIG
        if not config_path.is_file():
            raise ConfigNotFoundError(f"{CLASP_CONFIG} not found in {project_dir}")
        with open(config_path, "r") as f:
            return json.load(f)

    def write_templates(self, project_dir, project_type: str) -> list:
        template = TEMPLATES.get(project_type, TEMPLATES["standalone"])
        written = []
        for file_name, content in template.items():
            (Path(project_dir) / file_name).write_text(content)
            written.append(file_name)
        return written

    def create_project(
        self,
        project_name: str,
        project_type: str = "standalone",
        title: Optional[str] = None,
        directory: Optional[str] = None,
        parent_id: Optional[str] = None,
        create_initial_files: bool = True,
    ) -> dict:
        if project_type not in PROJECT_TYPES:
            raise ValidationError(f"Invalid project type '{project_type}'. Expected one of: {', '.join(PROJECT_TYPES)}")
        project_dir = Path(directory) if directory else self._base_dir() / project_name
        project_dir.mkdir(parents=True, exist_ok=True)

        args = ["create", "--title", title or project_name, "--type", project_type]
        if parent_id:
            args.extend(["--parentId", parent_id])
        result = self.run(args, cwd=project_dir)

        clasp_config = self.read_clasp_config(project_dir)
        files = self.write_templates(project_dir, project_type) if create_initial_files else []
        logger.info(f"Created clasp project {clasp_config.get('scriptId')} in {project_dir}")
        return {
            "projectName": project_name,
            "projectDir": str(project_dir),
            "scriptId": clasp_config.get("scriptId"),
            "type": project_type,
            "claspConfig": clasp_config,
            "initialFiles": files,
            "claspOutput": result.stdout,
            "success": True,
        }

    def project_status(self, project_dir) -> Optional[dict]:
        """Best-effort `clasp status`; None if it fails."""
        try:
            return parse_status_output(self.run(["status"], cwd=Path(project_dir)).stdout)
        except SubprocessError as e:
            logger.warning(f"Could not read clasp status for {project_dir}: {e}")
            return None

    def clone_project(self, script_id: str, directory: Optional[str] = None) -> dict:
        validate_script_id(script_id)
        clone_dir = Path(directory) if directory else self._base_dir() / f"gas-project-{script_id}"
        clone_dir.mkdir(parents=True, exist_ok=True)

        result = self.run(["clone", script_id], cwd=clone_dir)
        return {
            "scriptId": script_id,
            "cloneDir": str(clone_dir),
            "claspConfig": self.read_clasp_config(clone_dir),
            "projectInfo": self.project_status(clone_dir),
            "claspOutput": result.stdout,
            "success": True,
        }

    def pull(self, project_dir, environment: Optional[str] = None, version_number: Optional[int] = None) -> dict:
        project_dir = Path(project_dir)
        if environment:
            self.switch_environment(project_dir, environment)

        args = ["pull"]
        if version_number:
            args.extend(["--versionNumber", str(version_number)])
        result = self.run(args, cwd=project_dir)

        parsed = parse_pull_output(result.stdout)
        return {
            "projectDir": str(project_dir),
            "environment": environment,
            "changedFiles": parsed.items,
            "formatRecognized": parsed.format_recognized,
            "unparsedLines": parsed.unparsed_lines,
            "claspOutput": result.stdout,
            "success": True,
        }

    def deploy(self, project_dir, description: Optional[str] = None, version_number: Optional[int] = None) -> dict:
        args = ["deploy"]
        if description:
            args.extend(["--description", description])
        if version_number:
            args.extend(["--versionNumber", str(version_number)])
        result = self.run(args, cwd=Path(project_dir))

        parsed = parse_deploy_output(result.stdout)
        return {
            **result.to_dict(),
            "deployments": parsed.items,
            "formatRecognized": parsed.format_recognized,
            "deployUrl": extract_deploy_url(result.stdout),
        }

    def push_and_deploy(
        self,
        project_dir,
        environment: Optional[str] = None,
        deploy: bool = True,
        force: bool = False,
        deploy_description: Optional[str] = None,
        version_number: Optional[int] = None,
    ) -> dict:
        project_dir = Path(project_dir)
        if environment:
            self.switch_environment(project_dir, environment)

        args = ["push"]
        if force:
            args.append("--force")
        push_result = self.run(args, cwd=project_dir)
        logger.info(f"Pushed {project_dir}")

        deploy_result = None
        if deploy:
            description = deploy_description or f"Deploy {datetime.now(timezone.utc).isoformat()}"
            deploy_result = self.deploy(project_dir, description=description, version_number=version_number)
            logger.info(f"Deployed {project_dir}")

        return {
            "projectDir": str(project_dir),
            "environment": environment,
            "pushOutput": push_result.stdout,
            "deployOutput": deploy_result["stdout"] if deploy_result else None,
            "deployUrl": deploy_result["deployUrl"] if deploy_result else None,
            "deployments": deploy_result["deployments"] if deploy_result else [],
            "success": True,
        }

    def list_projects(self) -> dict:
        result = self.run(["list"])
        parsed = parse_list_output(result.stdout)
        return {
            "projects": parsed.items,
            "count": len(parsed.items),
            "formatRecognized": parsed.format_recognized,
            "unparsedLines": parsed.unparsed_lines,
            "claspOutput": result.stdout,
            "success": True,
        }
