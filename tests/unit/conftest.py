"""
Unit test configuration.

Provides in-memory stand-ins for the googleapiclient resource chains used by
the SDK (service.projects().getContent(...).execute() and friends). The fake
scripts().run understands the temp scripts generated by the snippet executor,
so property and trigger operations run end to end without network access.
"""

import json
import re
from itertools import count
from unittest.mock import MagicMock

import pytest

from gasmcp.sdk.crypto import EncryptionHelper
from gasmcp.sdk.exceptions import NotAuthenticatedError
from gasmcp.sdk.properties import PropertiesManager
from gasmcp.sdk.script.snippets import TEMP_NAME_REGEX

TEST_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
OTHER_KEY = "ffeeddccbbaa99887766554433221100ffeeddccbbaa99887766554433221100"

ARGS_LINE = re.compile(r"^\s*var args = (.*);$", re.M)


class FakeRequest:
    """Mimics an HttpRequest: the call happens on execute()."""

    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


def script_error(message):
    return {
        "done": True,
        "error": {
            "code": 3,
            "message": "ScriptError",
            "details": [{
                "@type": "type.googleapis.com/google.apps.script.v1.ExecutionError",
                "errorMessage": message,
                "errorType": "ScriptError",
                "scriptStackTraceElements": [],
            }],
        },
    }


def script_result(value):
    return {
        "done": True,
        "response": {"@type": "type.googleapis.com/google.apps.script.v1.ExecutionResponse", "result": value},
    }


class FakeScriptService:
    """In-memory Apps Script API."""

    def __init__(self):
        self.projects_data = {}
        self.properties = {}
        self.triggers = {}
        self.update_calls = []
        self.run_calls = []
        self.get_content_calls = 0
        self.get_content_hook = None
        self.run_exception = None
        self.processes_data = {}
        self._ids = count(1)

    def add_project(self, title="Demo", files=None):
        script_id = f"script{next(self._ids):04d}-abcdefghij"
        self.projects_data[script_id] = {
            "title": title,
            "files": [dict(f) for f in (files or [])],
            "versions": [],
            "deployments": [],
        }
        return script_id

    def files_of(self, script_id):
        return self.projects_data[script_id]["files"]

    def projects(self):
        return _Projects(self)

    def scripts(self):
        return _Scripts(self)

    def processes(self):
        return _Processes(self)


class _Projects:
    def __init__(self, svc):
        self.svc = svc

    def create(self, body):
        def run():
            script_id = self.svc.add_project(body["title"])
            return {"scriptId": script_id, "title": body["title"],
                    "createTime": "2026-01-01T00:00:00Z", "updateTime": "2026-01-01T00:00:00Z"}
        return FakeRequest(run)

    def get(self, scriptId):
        def run():
            project = self.svc.projects_data[scriptId]
            return {"scriptId": scriptId, "title": project["title"],
                    "createTime": "2026-01-01T00:00:00Z", "updateTime": "2026-01-02T00:00:00Z"}
        return FakeRequest(run)

    def getContent(self, scriptId, versionNumber=None):
        def run():
            self.svc.get_content_calls += 1
            if self.svc.get_content_hook:
                self.svc.get_content_hook(scriptId, self.svc.get_content_calls)
            return {"scriptId": scriptId, "files": [dict(f) for f in self.svc.files_of(scriptId)]}
        return FakeRequest(run)

    def updateContent(self, scriptId, body):
        def run():
            files = [dict(f) for f in body["files"]]
            self.svc.update_calls.append((scriptId, files))
            self.svc.projects_data[scriptId]["files"] = files
            return {"scriptId": scriptId, "files": files}
        return FakeRequest(run)

    def getMetrics(self, **params):
        return FakeRequest(lambda: {"activeUsers": [], "totalExecutions": [], "params": params})

    def versions(self):
        return _Versions(self.svc)

    def deployments(self):
        return _Deployments(self.svc)


class _Versions:
    def __init__(self, svc):
        self.svc = svc

    def create(self, scriptId, body):
        def run():
            versions = self.svc.projects_data[scriptId]["versions"]
            versions.append(body)
            return {"scriptId": scriptId, "versionNumber": len(versions), "description": body.get("description")}
        return FakeRequest(run)


class _Deployments:
    def __init__(self, svc):
        self.svc = svc

    def create(self, scriptId, body):
        def run():
            deployments = self.svc.projects_data[scriptId]["deployments"]
            deployment_id = f"AKfycb-deployment-{len(deployments) + 1}"
            deployment = {
                "deploymentId": deployment_id,
                "deploymentConfig": dict(body),
                "updateTime": "2026-01-03T00:00:00Z",
                "entryPoints": [{
                    "entryPointType": "WEB_APP",
                    "webApp": {"url": f"https://script.google.com/macros/s/{deployment_id}/exec"},
                }],
            }
            deployments.append(deployment)
            return deployment
        return FakeRequest(run)

    def list(self, scriptId):
        return FakeRequest(lambda: {"deployments": list(self.svc.projects_data[scriptId]["deployments"])})


class _Processes:
    def __init__(self, svc):
        self.svc = svc

    def listScriptProcesses(self, scriptId, pageSize=100, pageToken=None, scriptProcessFilter_functionName=None,
                            scriptProcessFilter_statuses=None):
        def run():
            processes = self.svc.processes_data.get(scriptId, [])
            if scriptProcessFilter_functionName:
                processes = [p for p in processes if p["functionName"] == scriptProcessFilter_functionName]
            if scriptProcessFilter_statuses:
                processes = [p for p in processes if p["processStatus"] in scriptProcessFilter_statuses]
            return {"processes": processes[:pageSize]}
        return FakeRequest(run)


class _Scripts:
    """Executes user functions of the form `function f(){return <json>}` and
    interprets the generated property/trigger snippets."""

    def __init__(self, svc):
        self.svc = svc

    def run(self, scriptId, body):
        def run():
            self.svc.run_calls.append((scriptId, dict(body)))
            if self.svc.run_exception:
                raise self.svc.run_exception
            name = body["function"]
            for f in self.svc.files_of(scriptId):
                if f"function {name}(" not in (f.get("source") or ""):
                    continue
                match = TEMP_NAME_REGEX.match(f["name"])
                if match:
                    args = json.loads(ARGS_LINE.search(f["source"]).group(1))
                    return self._snippet(scriptId, match.group(1), args)
                simple = re.search(
                    rf"function {re.escape(name)}\s*\(\)\s*\{{\s*return\s+(.+?);?\s*\}}", f["source"]
                )
                if simple:
                    return script_result(json.loads(simple.group(1)))
                return script_error(f"Unsupported function body for {name}")
            return script_error(f"Script function not found: {name}")
        return FakeRequest(run)

    def _snippet(self, script_id, op, args):
        props = self.svc.properties.setdefault(script_id, {})
        triggers = self.svc.triggers.setdefault(script_id, [])
        if op == "set_property":
            props[args["key"]] = args["value"]
            return script_result(True)
        if op == "get_property":
            return script_result(props.get(args["key"]))
        if op == "delete_property":
            props.pop(args["key"], None)
            return script_result(True)
        if op == "get_all_properties":
            return script_result(dict(props))
        if op == "list_triggers":
            return script_result(list(triggers))
        if op == "create_trigger":
            trigger = {"triggerId": f"trigger-{len(triggers) + 1}",
                       "handlerFunction": args["handlerFunction"], "eventType": args["eventType"]}
            triggers.append(trigger)
            return script_result(trigger)
        if op == "delete_trigger":
            for t in triggers:
                if t["triggerId"] == args["triggerId"]:
                    triggers.remove(t)
                    return script_result({"deleted": args["triggerId"]})
            return script_error(f"Trigger not found: {args['triggerId']}")
        return script_error(f"Unknown snippet op {op}")


class FakeDriveService:
    """Drive files().list backed by the fake script projects."""

    def __init__(self, script_service):
        self.script_service = script_service
        self.list_calls = []

    def files(self):
        drive = self

        class _Files:
            def list(self, **params):
                def run():
                    drive.list_calls.append(params)
                    files = [
                        {"id": sid, "name": p["title"], "createdTime": "2026-01-01T00:00:00Z",
                         "modifiedTime": "2026-01-02T00:00:00Z"}
                        for sid, p in drive.script_service.projects_data.items()
                    ]
                    return {"files": files[:params.get("pageSize", 10)]}
                return FakeRequest(run)

        return _Files()


class FakeAuth:
    """Authenticator stand-in handing out the fake services."""

    def __init__(self, script_service, drive_service, authenticated=True):
        self.script_service = script_service
        self.drive_service = drive_service
        self.authenticated = authenticated
        self.authenticate_calls = 0

    def is_authenticated(self):
        return self.authenticated

    def authenticate(self):
        self.authenticate_calls += 1
        self.authenticated = True

    def get_script_service(self):
        if not self.authenticated:
            raise NotAuthenticatedError("Not authenticated")
        return self.script_service

    def get_drive_service(self):
        if not self.authenticated:
            raise NotAuthenticatedError("Not authenticated")
        return self.drive_service

    def get_auth_info(self):
        return {"authenticated": self.authenticated, "strategy": "fake", "scopes": [], "has_access_token": True}


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the developer's real config and credentials out of every test."""
    monkeypatch.setenv("GASMCP_CONFIG_FILE", str(tmp_path / "config.yaml"))
    for name in ("GOOGLE_SERVICE_ACCOUNT_KEY", "GOOGLE_CREDENTIALS_PATH", "GOOGLE_AUTH_CODE",
                 "GOOGLE_TOKEN_PATH", "ENCRYPTION_KEY", "CLASP_BINARY", "CLASP_TIMEOUT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def script_service():
    return FakeScriptService()


@pytest.fixture
def drive_service(script_service):
    return FakeDriveService(script_service)


@pytest.fixture
def fake_auth(script_service, drive_service):
    return FakeAuth(script_service, drive_service)


@pytest.fixture
def main_key():
    return TEST_KEY


@pytest.fixture
def other_key():
    return OTHER_KEY


@pytest.fixture
def cipher():
    return EncryptionHelper(TEST_KEY)


@pytest.fixture
def properties_manager(fake_auth, cipher):
    return PropertiesManager(fake_auth, cipher)


@pytest.fixture
def manifest():
    return {"timeZone": "Etc/UTC", "runtimeVersion": "V8", "dependencies": {}}


@pytest.fixture
def project_id(script_service, manifest):
    """A project with one script file and a manifest."""
    return script_service.add_project("Demo", files=[
        {"name": "Code", "type": "SERVER_JS", "source": "function hello(){return \"hi\"}"},
        {"name": "appsscript", "type": "JSON", "source": json.dumps(manifest)},
    ])


@pytest.fixture
def mock_clasp():
    """A ClaspRunner replacement whose methods are MagicMocks."""
    return MagicMock()
