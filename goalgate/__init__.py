"""Goal App gateway.

Routing and dispatch layer for the goal-tracking microservices:
 - ordered path-prefix routing from one listening port to five upstreams
 - permissive CORS policy applied to every response
 - a blocking service-to-service client (fetch a user by id)

There is no retry, circuit breaking or load balancing on purpose.
"""
