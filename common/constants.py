PROJECT_NAME = "tg-assistant"
DEFAULT_ENV = "dev"
PARAMETER_ROOT = "/automation"

# Stack naming
MESSAGING_STACK_PREFIX = "DualQueueMessageStack"
API_GATEWAY_STACK_PREFIX = "ApiGatewayStack"

# Tags applied to every top-level stack
APP_TAG_KEY = "app"
APP_TAG_VALUE = "telegram-webhook"
ENV_TAG_KEY = "env"

# Queue purposes (used in naming)
ORDER = "order"
RESULT = "result"
ORDER_DLQ = "order-dlq"
RESULT_DLQ = "result-dlq"

# Queue defaults
ORDER_VISIBILITY_TIMEOUT_SECONDS = 300
RESULT_VISIBILITY_TIMEOUT_SECONDS = 180
DEFAULT_MAX_RECEIVE_COUNT = 3
MAX_VISIBILITY_TIMEOUT_SECONDS = 43200  # SQS hard limit (12 hours)
ORDER_RETENTION_DAYS = 14
RESULT_RETENTION_DAYS = 7
DLQ_RETENTION_DAYS = 7
RECEIVE_WAIT_SECONDS = 6

# Service identities
LAMBDA_SERVICE_PRINCIPAL = "lambda.amazonaws.com"
LAMBDA_BASIC_EXECUTION_POLICY = "service-role/AWSLambdaBasicExecutionRole"
WEBHOOK = "webhook"
WORKER = "worker"
FEEDBACK = "feedback"

SQS_PRODUCER_ACTIONS = ["sqs:SendMessage", "sqs:GetQueueAttributes"]
SQS_CONSUMER_ACTIONS = [
    "sqs:ReceiveMessage",
    "sqs:DeleteMessage",
    "sqs:ChangeMessageVisibility",
    "sqs:GetQueueAttributes",
]
KMS_QUEUE_ACTIONS = ["kms:Decrypt", "kms:GenerateDataKey"]

# Monitoring
QUEUE_ALERTS = "queue-alerts"
API_ALERTS = "api-alerts"
ORDER_AGE_THRESHOLD_SECONDS = 900
RESULT_AGE_THRESHOLD_SECONDS = 600
API_5XX_THRESHOLD = 5
API_LATENCY_THRESHOLD_MS = 5000

# API Gateway
DEFAULT_THROTTLING_RATE_LIMIT = 10
DEFAULT_THROTTLING_BURST_LIMIT = 25
LISTENER_RESOURCE_PATH = "qlibin-assistant-listener"
INTEGRATION_TIMEOUT_SECONDS = 29
WEBHOOK_FUNCTION_NAME = "telegram-webhook-lambda-{env}"
