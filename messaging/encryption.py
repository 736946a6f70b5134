from aws_cdk import aws_kms as kms

from common.stack_context import StackContext


def build_queue_encryption_key(context: StackContext) -> kms.Key:
    """Create the environment's KMS key. Rotation is always on."""
    return kms.Key(
        context.scope,
        "QueueEncryptionKey",
        description=f"{context.prefix} SQS encryption key",
        enable_key_rotation=True,
    )
