import json
import re
import uuid
from urllib.parse import urlsplit

import pytest
from nacl import encoding, public

from danku.config import parse_config

GITHUB_API = "api.github.com"
CLOUDFLARE_API = "api.cloudflare.com"


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.text = self.content.decode("utf-8")

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def not_found():
    return FakeResponse(404, {"message": "Not Found"})


class FakeGitHub:
    """
    In-memory subset of the GitHub REST API: repositories, environments,
    Actions secrets and variables (repository and environment level).
    """

    def __init__(self, login="octocat", orgs=()):
        self.login = login
        self.orgs = list(orgs)
        self.repos = {}
        self.environments = set()
        self.secrets = {}
        self.variables = {}
        self.private_key = public.PrivateKey.generate()
        self.status_override = None

    @property
    def public_key(self):
        return self.private_key.public_key.encode(encoding.Base64Encoder).decode("utf-8")

    def decrypt(self, encrypted_value):
        box = public.SealedBox(self.private_key)
        return box.decrypt(encrypted_value.encode("utf-8"), encoder=encoding.Base64Encoder).decode("utf-8")

    def secret(self, owner, repo, name, environment=None):
        return self.decrypt(self.secrets[(owner, repo, environment, name)])

    def handle(self, method, path, body):
        if self.status_override is not None:
            return FakeResponse(self.status_override, {"message": "Bad credentials"})

        if path == "/user":
            return FakeResponse(200, {"login": self.login})
        if path == "/user/memberships/orgs":
            return FakeResponse(200, [{"organization": {"login": org}} for org in self.orgs])
        if method == "POST" and (path == "/user/repos" or re.fullmatch(r"/orgs/[^/]+/repos", path)):
            owner = self.login if path == "/user/repos" else path.split("/")[2]
            return self._create_repo(owner, body)

        m = re.fullmatch(r"/repos/([^/]+)/([^/]+)(/.*)?", path)
        if not m:
            return not_found()
        owner, repo, rest = m.group(1), m.group(2), m.group(3) or ""
        if (owner, repo) not in self.repos:
            return not_found()
        if not rest:
            return FakeResponse(200, self.repos[(owner, repo)])

        environment = None
        env_match = re.fullmatch(r"/environments/([^/]+)(/.*)?", rest)
        if env_match:
            environment, rest = env_match.group(1), env_match.group(2) or ""
            if not rest:
                if method == "PUT":
                    self.environments.add((owner, repo, environment))
                    return FakeResponse(200, {"name": environment})
                if (owner, repo, environment) in self.environments:
                    return FakeResponse(200, {"name": environment})
                return not_found()
            if (owner, repo, environment) not in self.environments:
                return not_found()
        elif rest.startswith("/actions"):
            rest = rest[len("/actions"):]
        else:
            return not_found()

        if rest == "/secrets/public-key":
            return FakeResponse(200, {"key_id": "key-1", "key": self.public_key})
        secret = re.fullmatch(r"/secrets/([^/]+)", rest)
        if secret:
            key = (owner, repo, environment, secret.group(1))
            if method == "PUT":
                created = key not in self.secrets
                self.secrets[key] = body["encrypted_value"]
                return FakeResponse(201 if created else 204)
            if key in self.secrets:
                return FakeResponse(200, {"name": secret.group(1)})
            return not_found()

        if rest == "/variables" and method == "POST":
            key = (owner, repo, environment, body["name"])
            if key in self.variables:
                return FakeResponse(409, {"message": "Already exists"})
            self.variables[key] = body["value"]
            return FakeResponse(201)
        variable = re.fullmatch(r"/variables/([^/]+)", rest)
        if variable:
            key = (owner, repo, environment, variable.group(1))
            if key not in self.variables:
                return not_found()
            if method == "PATCH":
                self.variables[key] = body["value"]
                return FakeResponse(204)
            return FakeResponse(200, {"name": variable.group(1), "value": self.variables[key]})
        return not_found()

    def _create_repo(self, owner, body):
        if owner != self.login and owner not in self.orgs:
            return FakeResponse(404, {"message": "Not Found"})
        name = body["name"]
        if (owner, name) in self.repos:
            return FakeResponse(422, {"message": "Repository creation failed."})
        self.repos[(owner, name)] = {
            "name": name,
            "html_url": f"https://github.com/{owner}/{name}",
            "clone_url": f"https://github.com/{owner}/{name}.git",
            "default_branch": "main",
            "private": body.get("private", True),
        }
        return FakeResponse(201, self.repos[(owner, name)])


def envelope(result, *, success=True, result_info=None):
    payload = {"success": success, "errors": [], "messages": [], "result": result}
    if result_info is not None:
        payload["result_info"] = result_info
    return FakeResponse(200, payload)


class FakeCloudflare:
    """In-memory subset of the Cloudflare v4 API used by the CLI."""

    def __init__(self, account_id="acc-123", zones=("my-cute-website.com",)):
        self.account_id = account_id
        self.token_status = "active"
        self.zones = {name: f"zone-{i}" for i, name in enumerate(zones)}
        self.scripts = {}
        self.databases = {}
        self.domains = {}
        self.status_override = None

    def handle(self, method, path, body, params, files):
        if self.status_override is not None:
            return FakeResponse(
                self.status_override,
                {"success": False, "errors": [{"code": 10000, "message": "Authentication error"}], "result": None},
            )
        prefix = f"/accounts/{self.account_id}"
        if path == f"{prefix}/tokens/verify":
            return envelope({"id": "tok", "status": self.token_status})
        if path == "/zones":
            name = (params or {}).get("name")
            return envelope([{"id": zid, "name": zname} for zname, zid in self.zones.items() if zname == name])
        if not path.startswith(prefix):
            return FakeResponse(404, {"success": False, "errors": [{"code": 7003, "message": "Could not route"}]})
        rest = path[len(prefix):]
        if rest == "/workers/scripts":
            return envelope([{"id": name} for name in self.scripts])
        script = re.fullmatch(r"/workers/scripts/([^/]+)", rest)
        if script and method == "PUT":
            metadata = json.loads(files["metadata"][1])
            self.scripts[script.group(1)] = {"metadata": metadata, "source": files["index.js"][1].decode("utf-8")}
            return envelope({"id": script.group(1)})
        if rest == "/workers/domains" and method == "PUT":
            self.domains[body["hostname"]] = body
            return envelope({"id": "domain-1", **body})
        if rest == "/d1/database" and method == "GET":
            page, per_page = params["page"], params["per_page"]
            items = [{"uuid": u, "name": n} for n, u in self.databases.items()]
            chunk = items[(page - 1) * per_page: page * per_page]
            return envelope(chunk, result_info={"page": page, "per_page": per_page, "total_count": len(items)})
        if rest == "/d1/database" and method == "POST":
            database_id = str(uuid.uuid4())
            self.databases[body["name"]] = database_id
            return envelope({"uuid": database_id, "name": body["name"]})
        return FakeResponse(404, {"success": False, "errors": [{"code": 7003, "message": "Could not route"}]})


class FakeSession:
    """
    Stands in for `requests.Session`, routing requests to the fake providers
    and recording every call.
    """

    def __init__(self, github=None, cloudflare=None):
        self.github = github or FakeGitHub()
        self.cloudflare = cloudflare or FakeCloudflare()
        self.calls = []

    def request(self, method, url, headers=None, json=None, params=None, files=None, timeout=None):
        parts = urlsplit(url)
        self.calls.append((method, url))
        if parts.hostname == GITHUB_API:
            return self.github.handle(method, parts.path, json)
        if parts.hostname == CLOUDFLARE_API:
            return self.cloudflare.handle(method, parts.path.removeprefix("/client/v4"), json, params, files)
        raise AssertionError(f"unexpected request {method} {url}")

    def writes(self):
        return [call for call in self.calls if call[0] != "GET"]


def config_data(boilerplate=None, *, owner=None, url="https://my-cute-website.com"):
    github = {"token": "ghp_test"}
    if owner:
        github["owner"] = owner
    return {
        "boilerplate": boilerplate or {},
        "deploymentTarget": {"cloudFlare": {"accountId": "acc-123", "token": "cf-token", "url": url}},
        "gitProvider": {"gitHub": github},
    }


SAAS_BOILERPLATE = {
    "saasFs": {
        "postHogApiKey": "phc_test",
        "stripePublishableKey": "pk_live",
        "stripePublishableKeyDev": "pk_test",
        "stripeSecretKey": "sk_live",
        "stripeSecretKeyDev": "sk_test",
        "stripeWebhookSecret": "whsec",
    }
}


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def config():
    return parse_config(config_data())


@pytest.fixture
def marketing_config():
    return parse_config(config_data({"marketing": {"postHogApiKey": "phc_test"}}))


@pytest.fixture
def saas_config():
    return parse_config(config_data(SAAS_BOILERPLATE))
