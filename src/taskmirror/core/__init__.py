"""
Core building blocks shared by every layer.

Components:
- ports.py: store / subscription protocols (RemoteTaskStore, Subscription)
- query.py: conjunctive query predicates
- errors.py: error taxonomy (RecordParseError, SubscriptionError, MutationError)
- state.py: AppState, one session's worth of wired components
"""
