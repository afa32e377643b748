from config.settings import settings
from guardrails.policy import Domain, GuardrailPolicy, describe
from models import GuardrailVerdict

default_policy = GuardrailPolicy(settings.guardrails.restricted_tables)


def evaluate(statement: str, domain: Domain) -> GuardrailVerdict:
    return default_policy.evaluate(statement, domain)


__all__ = ["Domain", "GuardrailPolicy", "default_policy", "describe", "evaluate"]
