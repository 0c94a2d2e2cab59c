"""
User accounts for the billing engine.

The User row is the aggregate the subscription lifecycle operates on: the
``is_premium`` flag is derived from the user's subscriptions and rewritten
whenever a lifecycle transition changes them.
"""
