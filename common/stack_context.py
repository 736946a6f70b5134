from attrs import define, field
from aws_cdk import Stack

import common.constants as constants


@define(slots=True, frozen=True)
class StackContext:
    scope: Stack
    env: str = field(
        default=constants.DEFAULT_ENV,
        metadata={"description": "Deployment environment (dev, staging, prod)"},
    )
    project: str = field(default=constants.PROJECT_NAME)

    @property
    def aws_account_id(self) -> str:
        return Stack.of(self.scope).account

    @property
    def prefix(self) -> str:
        return f"{self.project}-{self.env}"

    # ---------- naming ----------
    def build_resource_name(self, purpose: str) -> str:
        """Build a physical resource name.

        Examples:
            - tg-assistant-dev-order-dlq
            - tg-assistant-prod-worker-role
        """
        return f"{self.prefix}-{purpose}".lower()

    def build_resource_id(self, *parts: str) -> str:
        """Build a logical ID from purpose fragments.

        Examples:
            - ("order", "dlq") -> OrderDlq
            - ("result-dlq", "alarm") -> ResultDlqAlarm
        """
        words = []
        for part in parts:
            words.extend(part.replace("_", "-").split("-"))
        return "".join(word.capitalize() for word in words if word)

    def build_parameter_name(self, category: str) -> str:
        """Build an SSM parameter path.

        Examples:
            - queues/order/url -> /automation/dev/queues/order/url
        """
        return f"{constants.PARAMETER_ROOT}/{self.env}/{category.strip('/')}"
