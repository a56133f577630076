# /flowbot/utils/metrics.py

from prometheus_client import Counter, Histogram

# All Prometheus metrics used by the service, kept in one place.

# Flow engine
trigger_matches_counter = Counter('flow_trigger_matches_total', 'Inbound messages that activated a flow', ['match_type'])
flow_runs_counter = Counter('flow_runs_total', 'Flow executions', ['status'])
flow_run_duration_histogram = Histogram('flow_run_duration_seconds', 'Wall time of one flow execution')
node_executions_counter = Counter('flow_node_executions_total', 'Flow node executions', ['node_type', 'status'])

# Collaborators
ai_requests_counter = Counter('ai_requests_total', 'Total AI requests', ['model', 'status'])
message_counter = Counter('whatsapp_messages_total', 'Outbound WhatsApp messages', ['status', 'message_type'])

# HTTP surface
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
