"""Helpers for HashiCorp Vault: Kubernetes authentication with token
persistence, and version agnostic access to KV secrets engines.
"""

from vault_helpers.k8s import KubernetesAuth, VaultSettings
from vault_helpers.kv import KVClient

__all__ = [
    "KVClient",
    "KubernetesAuth",
    "VaultSettings",
]
