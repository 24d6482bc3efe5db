# domains.py
"""Known network ecosystems and the domains each one covers."""
from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List

ECOSYSTEM_DOMAINS: Dict[str, FrozenSet[str]] = {
    "defaults": frozenset({
        "crl3.digicert.com",
        "crl4.digicert.com",
        "ocsp.digicert.com",
        "json-schema.org",
        "json.schemastore.org",
        "archive.ubuntu.com",
        "security.ubuntu.com",
        "ppa.launchpad.net",
        "keyserver.ubuntu.com",
        "azure.archive.ubuntu.com",
        "api.snapcraft.io",
        "packagecloud.io",
        "packages.cloud.google.com",
        "packages.microsoft.com",
    }),
    "github": frozenset({
        "github.com",
        "api.github.com",
        "codeload.github.com",
        "raw.githubusercontent.com",
        "objects.githubusercontent.com",
        "uploads.github.com",
        "ghcr.io",
        "github.githubassets.com",
        "lfs.github.com",
    }),
    "python": frozenset({
        "pypi.org",
        "pypi.python.org",
        "files.pythonhosted.org",
        "pip.pypa.io",
        "bootstrap.pypa.io",
        "conda.anaconda.org",
        "repo.anaconda.com",
    }),
    "node": frozenset({
        "registry.npmjs.org",
        "registry.npmjs.com",
        "npmjs.org",
        "npmjs.com",
        "nodejs.org",
        "registry.yarnpkg.com",
        "repo.yarnpkg.com",
        "bun.sh",
        "deno.land",
    }),
    "go": frozenset({
        "proxy.golang.org",
        "sum.golang.org",
        "go.dev",
        "golang.org",
        "pkg.go.dev",
        "goproxy.io",
    }),
    "rust": frozenset({
        "crates.io",
        "index.crates.io",
        "static.crates.io",
        "static.rust-lang.org",
        "sh.rustup.rs",
    }),
    "java": frozenset({
        "repo.maven.apache.org",
        "repo1.maven.org",
        "plugins.gradle.org",
        "services.gradle.org",
        "downloads.gradle.org",
    }),
    "dotnet": frozenset({
        "api.nuget.org",
        "nuget.org",
        "dotnet.microsoft.com",
        "dotnetcli.blob.core.windows.net",
    }),
    "ruby": frozenset({
        "rubygems.org",
        "api.rubygems.org",
        "index.rubygems.org",
    }),
    "containers": frozenset({
        "registry.hub.docker.com",
        "hub.docker.com",
        "auth.docker.io",
        "production.cloudflare.docker.com",
        "registry-1.docker.io",
        "quay.io",
        "mcr.microsoft.com",
    }),
    "linux-distros": frozenset({
        "deb.debian.org",
        "security.debian.org",
        "dl-cdn.alpinelinux.org",
        "mirrors.fedoraproject.org",
    }),
    "playwright": frozenset({
        "playwright.download.prss.microsoft.com",
        "cdn.playwright.dev",
    }),
}


def is_ecosystem(name: str) -> bool:
    return name in ECOSYSTEM_DOMAINS


def ecosystem_for_domain(domain: str) -> str | None:
    """Ecosystem that lists ``domain`` (or, for ``*.x`` entries, ``x``)."""
    domain = domain.strip().lower()
    if domain.startswith("*."):
        domain = domain[2:]
    for ecosystem in sorted(ECOSYSTEM_DOMAINS):
        if domain in ECOSYSTEM_DOMAINS[ecosystem]:
            return ecosystem
    return None


def unknown_entries(allowed: Iterable[str]) -> List[str]:
    """Entries that are neither ecosystem identifiers nor domains of one."""
    return [
        entry for entry in allowed
        if not is_ecosystem(entry) and ecosystem_for_domain(entry) is None
    ]
