"""HTTP clients for the external collaborators.

Problem generation, code judging and the user profile service all live in
other processes; these thin clients are the only place that knows their
URLs. Tests swap them for in-process fakes with the same methods.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from arena.exceptions import EvaluationFailed, ExternalUpdateFailed, GenerationFailed

logger = logging.getLogger(__name__)


def _error_details(exc: requests.exceptions.RequestException) -> str:
    response = getattr(exc, 'response', None)
    if response is not None:
        try:
            return str(response.json())
        except ValueError:
            return response.text or str(exc)
    return str(exc)


class ChallengeBackend:
    """Cache-aware problem generator.

    ``generate`` returns ``{challenge, cached, similarity, source}`` where
    ``challenge`` holds the problem body and its test cases.
    """

    def __init__(self, base_url: str, timeout: float = 30):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def generate(self, difficulty: str, topic: Optional[str], user_email: Optional[str]) -> Dict[str, Any]:
        try:
            response = requests.post(
                f"{self.base_url}/api/challenges/generate",
                json={'difficulty': difficulty, 'topic': topic, 'userEmail': user_email},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout:
            raise GenerationFailed('Challenge generation timed out. Please try again.', details='timeout')
        except requests.exceptions.RequestException as e:
            raise GenerationFailed('Failed to generate challenge. Please try again.', details=_error_details(e))
        except ValueError:
            raise GenerationFailed('Challenge service returned an invalid response.', details='invalid json')
        if not isinstance(data, dict) or not data.get('challenge'):
            raise GenerationFailed('Challenge service returned no challenge.', details=data)
        return data


class JudgeBackend:
    """Runs code against test cases; returns ``{results: [{passed, ...}]}``."""

    def __init__(self, base_url: str, timeout: float = 30):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def run(self, code: str, language: str, test_cases: List[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = requests.post(
                f"{self.base_url}/api/evaluate",
                json={'code': code, 'language': language, 'testCases': test_cases},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise EvaluationFailed('Evaluation failed', details=_error_details(e))
        except ValueError:
            raise EvaluationFailed('Judge returned an invalid response', details='invalid json')
        if not isinstance(data, dict) or not isinstance(data.get('results'), list):
            raise EvaluationFailed('Judge returned no results', details=data)
        return data


class ProfileBackend:
    """User profile/stats service, authenticated with a shared secret header."""

    def __init__(self, base_url: str, api_secret: str, timeout: float = 30):
        self.base_url = base_url.rstrip('/')
        self.api_secret = api_secret
        self.timeout = timeout

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={
                    'Content-Type': 'application/json',
                    'x-internal-api-key': self.api_secret,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ExternalUpdateFailed(f"POST {path} failed", details=_error_details(e))
        try:
            return response.json()
        except ValueError:
            return None

    def mark_solved(self, email: str, challenge_id: str) -> Any:
        return self._post('/api/user/mark-solved', {'email': email, 'challengeId': challenge_id})

    def update_stats(self, email: str, stats: Dict[str, Any]) -> Any:
        return self._post('/api/user/update-stats', {'email': email, 'stats': stats})


class Backends:
    def __init__(self, generator, judge, profiles):
        self.generator = generator
        self.judge = judge
        self.profiles = profiles

    @classmethod
    def from_config(cls, config) -> 'Backends':
        timeout = float(config.get('EXTERNAL_TIMEOUT_SEC', 30))
        return cls(
            generator=ChallengeBackend(config.get('AI_SERVICE_URL', ''), timeout),
            judge=JudgeBackend(config.get('JUDGE_SERVICE_URL', ''), timeout),
            profiles=ProfileBackend(config.get('FRONTEND_API_URL', ''), config.get('INTERNAL_API_SECRET', ''), timeout),
        )
