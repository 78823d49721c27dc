"""
awsm-env - Resolve annotated .env spec files into environment variables.

Declarations come from a spec file; values come from literal defaults, AWS
Secrets Manager, AWS SSM Parameter Store and caller overrides::

    from awsm_env import parse, Resolver
    from awsm_env.core.aws import build_providers
    from awsm_env.core.settings import load_settings

    entries = parse(open(".env.example").read())
    env = Resolver(build_providers(load_settings())).resolve(entries)
"""

__version__ = "0.1.0"

from awsm_env.core import *  # noqa
from awsm_env.core import __all__ as _core_all

__all__ = ["__version__", *_core_all]
