from .auth_scorer import AuthScore, AuthScorer, AuthSignals, score_signals
from .detection import ConsentDetector, Detection
from .document import PageDocument
from .interceptors import InterceptorRegistry, RequestInfo, is_login_request
from .observer import PageObserver, PageState, poll_intervals
from .transport import HttpTransport, InProcessTransport

__all__ = [
    "AuthScore",
    "AuthScorer",
    "AuthSignals",
    "ConsentDetector",
    "Detection",
    "HttpTransport",
    "InProcessTransport",
    "InterceptorRegistry",
    "PageDocument",
    "PageObserver",
    "PageState",
    "RequestInfo",
    "is_login_request",
    "poll_intervals",
    "score_signals",
]
