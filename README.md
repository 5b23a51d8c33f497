# accelctl

`accelctl` holds the reconciliation logic that keeps global accelerators,
load balancer endpoints and DNS alias records in step with the load-balanced
services and ingresses of a cluster.

The package does not talk to a cloud provider by itself. The managers work
against small API protocols (`LoadBalancerAPI`, `GlobalAcceleratorAPI`,
`Route53API`), and you supply objects that implement them: a thin wrapper over
your own SDK client, or an in-memory fake for tests.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install .[test]
```

## Modules

- `accelctl.errors`: `NoRetryError` marks a failure after which a work item
  must not be requeued; `is_no_retry` tells whether an exception, or any
  exception it was raised from, is one.
- `accelctl.cloudprovider`: `detect_cloud_provider` reads the last two labels
  of a load balancer hostname and returns `"aws"` for `amazonaws.com`; any
  other domain raises `UnknownCloudProviderError`.
- `accelctl.workqueue`: `RateLimitingQueue` never hands the same item to two
  workers at once. It offers `add`, `add_after`, `add_rate_limited` (with
  exponential per-item back-off and an overall rate limit), `forget`,
  `num_requeues`, `get`, `done` and `shut_down`.
- `accelctl.reconcile`: `process_next_work_item` takes one key off a queue.
  If `key_to_obj` raises `NotFoundError` the delete callback runs, otherwise
  the create/update callback runs on a deep copy of the object. The returned
  `Result` decides whether the key is forgotten, requeued with back-off, or
  requeued after `requeue_after` seconds. A callback that raises causes a
  rate-limited requeue, unless the error is a `NoRetryError`. The function
  returns `False` once the queue is shut down.
- `accelctl.signals`: `setup_signal_handler` returns a `threading.Event` set
  on the first SIGINT or SIGTERM; a second signal exits the process with
  code 1. It may be called only once.
- `accelctl.resources`: dataclasses `Service`, `ServicePort`, `Ingress`,
  `IngressRule`, `IngressPath` and `LoadBalancerIngress`; `Service.key()` and
  `Ingress.key()` return `namespace/name`.
- `accelctl.aws.loadbalancer`: `get_lb_name_from_hostname` returns the name
  and region of an ALB or NLB from its hostname (raising
  `HostnameParseError` otherwise), `get_region_from_arn` returns the region
  field of an ARN, and `get_load_balancer` looks a load balancer up through a
  `LoadBalancerAPI` (raising `LoadBalancerNotFoundError`).
- `accelctl.aws.models`: accelerators, listeners, port ranges, endpoint
  groups, tags, hosted zones and record sets, with the `Protocol`,
  `AcceleratorStatus` and `RRType` enums.
- `accelctl.aws.listeners`: works out the listener ports and protocol a
  service or ingress needs (honouring the
  `alb.ingress.kubernetes.io/listen-ports` annotation), whether an existing
  listener has drifted from them, and how accelerators are named and tagged.
- `accelctl.aws.accelerators`: `AcceleratorClient` wraps a
  `GlobalAcceleratorAPI`. Deleting an accelerator first disables it and polls
  until it is deployed again.
- `accelctl.aws.globalaccelerator`: `GlobalAcceleratorManager` creates,
  updates and cleans up the accelerator, listener and endpoint group that
  belong to a resource, and adds or removes load balancers in an endpoint
  group. Ensure calls return an `EnsureResult`; while the load balancer is
  not active, `retry_after` is 30 seconds.
- `accelctl.aws.route53`: `Route53Manager` keeps alias A records and their
  ownership TXT records pointed at the right accelerator and removes them
  again. Ensure calls return a `Route53Result`; when no single accelerator
  matches, `retry_after` is 60 seconds.

## Example

```python
from accelctl.aws.loadbalancer import get_lb_name_from_hostname

name, region = get_lb_name_from_hostname(
    "test-b6cdc5fbd1d6fa43.elb.ap-northeast-1.amazonaws.com"
)
assert (name, region) == ("test", "ap-northeast-1")
```

## What it does not do

The package is a library. It has no command to run, does not watch a
cluster for changes, runs no worker threads or leader election of its own,
and ships no cloud SDK client. Wiring the queue, the callbacks and your API
objects into a running controller is left to the caller.

## Running the tests

```
pytest
```