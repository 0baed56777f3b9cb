"""
AWS Config conformance pack templates included into the hardening stack
"""
import os
from pathlib import Path

import requests

# Local checkout layout of https://github.com/awslabs/aws-config-rules
TEMPLATE_DIR = os.path.join("aws-config-rules", "aws-config-conformance-packs")

UPSTREAM_BASE_URL = "https://raw.githubusercontent.com/awslabs/aws-config-rules/master/aws-config-conformance-packs"

CONFORMANCE_PACKS = {
    'cloudtrail': {
        'file': 'Security-Best-Practices-for-CloudTrail.yaml',
        'description': 'Security Best Practices for AWS CloudTrail'
    },
    's3': {
        'file': 'Operational-Best-Practices-for-Amazon-S3.yaml',
        'description': 'Operational Best Practices for Amazon S3'
    },
    'api-gateway': {
        'file': 'Operational-Best-Practices-for-API-Gateway.yaml',
        'description': 'Operational Best Practices for Amazon API Gateway'
    }
}

DEFAULT_CONFORMANCE_PACK = 'api-gateway'


class UnknownConformancePackError(KeyError):
    """Raised for a pack name that is not in CONFORMANCE_PACKS."""

    def __str__(self):
        return (
            f"Unknown conformance pack {self.args[0]!r}; "
            f"choose one of: {', '.join(sorted(CONFORMANCE_PACKS))}"
        )


def _pack_info(name: str) -> dict:
    try:
        return CONFORMANCE_PACKS[name]
    except KeyError:
        raise UnknownConformancePackError(name) from None


def template_url(name: str) -> str:
    return f"{UPSTREAM_BASE_URL}/{_pack_info(name)['file']}"


def template_path(name: str, base_dir: str = TEMPLATE_DIR) -> Path:
    return Path(base_dir, _pack_info(name)['file']).resolve()


def require_template_file(path) -> str:
    """Return path as an absolute string, failing if the template is not on disk."""
    path = Path(path).resolve()
    if not path.is_file():
        print(f"❌ Conformance pack template not found: {path}")
        print("   Run scripts/download_conformance_packs.py first!")
        raise FileNotFoundError(f"Conformance pack template not found: {path}")
    return str(path)


def resolve_template(name: str, base_dir: str = TEMPLATE_DIR) -> str:
    """Return the absolute path of a pack's template, failing if it is not on disk."""
    return require_template_file(template_path(name, base_dir))


def download_templates(names=None, base_dir: str = TEMPLATE_DIR) -> dict:
    """Download pack templates from awslabs/aws-config-rules into base_dir.

    Returns a mapping of pack name to the local file written.
    """
    names = list(CONFORMANCE_PACKS) if names is None else list(names)

    os.makedirs(base_dir, exist_ok=True)

    downloaded = {}
    for name in names:
        url = template_url(name)
        print(f"📥 Downloading {name}...")

        response = requests.get(url, timeout=30)
        response.raise_for_status()

        local_file = template_path(name, base_dir)
        with open(local_file, 'w') as f:
            f.write(response.text)

        downloaded[name] = str(local_file)
        print(f"✅ Downloaded to {local_file}")

    return downloaded
