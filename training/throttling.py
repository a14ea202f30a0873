# training/throttling.py

from rest_framework.throttling import UserRateThrottle


class TriggerRateThrottle(UserRateThrottle):
    """
    Per-user throttle for the manual training trigger.

    Every trigger runs the queue processor synchronously inside the request,
    so the rate is kept low. Controlled by:
        REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['training_trigger']
    """

    scope = "training_trigger"
