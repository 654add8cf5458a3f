"""
Business logic services for the Engagement Engine.

- channel_health: per-channel health classification and cohort views
- nba_engine: next-best-action selection, ranking and summaries
- message_saturation: Message Saturation Index scoring
- saturation_nba: saturation overlay on top of the NBA engine
- constraint_manager: capacity, contact, compliance, budget and territory checks
- outcome_strategy: simulated and recorded allocation outcomes
- execution_planner: execution plan state machine
- optimization_monitor: plan performance monitoring and rebalance advice
"""
