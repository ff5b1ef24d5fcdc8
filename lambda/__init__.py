"""Lambda handler modules, installed as ``notifier_lambda`` for the CLI."""
