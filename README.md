# scrumdinger

The application layer of a service for scrum meetings: error types, request
validation, JWT authentication and rule-based authorization, a client for the
auth service, middleware, and request handlers for health checks, the auth
service and scrums.

## Modules

- `scrumdinger.errs`: error codes (`ErrCode`, with `from_name` and
  `http_status`), the application error `AppError` (`to_dict`, `from_dict`,
  `encode`, `http_status`), per-field errors `FieldError` and `FieldErrors`,
  and the helpers `new_error`, `new_fields_error`, `is_field_errors` and
  `get_field_errors`.
- `scrumdinger.validate`: `check(model)` validates a dataclass instance
  against the `validate` rules in its field metadata (`required`, `email`,
  `omitempty`, `eqfield=<attribute>`) and raises `FieldErrors` naming every
  failing field.
- `scrumdinger.metrics`: thread-safe counters `Metrics` (`add_requests`,
  `add_errors`, `add_panics`, `add_goroutines`, `snapshot`) and a shared
  instance `METRICS`.
- `scrumdinger.query`: paged query results, `QueryResult` and `new_result`.
- `scrumdinger.context`: the request seen by handlers (`Request`, with
  `param`, `header`, `query_value`) and the per-request values
  `RequestContext` (`require_user_id`, `require_user`, `require_scrum`,
  `require_tran`, raising `ContextError` when a value is absent).
- `scrumdinger.auth`: `Claims`, the `KeyLookup` protocol, `Auth` for RS256
  token generation (`generate_token`), authentication of
  `Bearer <token>` values (`authenticate`) and authorization (`authorize`),
  and `evaluate_rule` for the rules `rule_any`, `rule_admin_only`,
  `rule_user_only` and `rule_admin_or_subject`. Failures raise `AuthError`.
- `scrumdinger.authclient`: `AuthClient`, an HTTP client for the auth
  service's `/v1/auth/authenticate` and `/v1/auth/authorize` endpoints, with
  the models `Authorize` and `AuthenticateResp`. A 401 answer is raised as
  `AppError`; other failures raise `AuthClientError`.
- `scrumdinger.middleware`: handlers are called as `handler(ctx, request)`
  and report errors by returning an exception instance. Middleware:
  `authenticate`, `bearer`, `basic`, `authorize`, `authorize_user`,
  `authorize_scrum`, `errors`, `logger`, `track_metrics`, `panics` and
  `begin_commit_rollback`; helpers `is_error` and `parse_basic_auth`.
- `scrumdinger.checkapp`: `CheckApp` with `readiness` and `liveness`
  handlers, and the `Info` model.
- `scrumdinger.authapp`: `AuthApp` with `token`, `authenticate` and
  `authorize` handlers, and the `Token` model.
- `scrumdinger.scrumapp`: `ScrumApp` with `create`, `update`, `delete` and
  `query_by_id` handlers, the models `Scrum`, `NewScrum`, `UpdateScrum`,
  `BusNewScrum`, `BusUpdateScrum`, `QueryParams` and `ScrumFilter`, and the
  conversions `parse_query_params`, `parse_filter`, `to_app_scrum`,
  `to_app_scrums`, `to_bus_new_scrum` and `to_bus_update_scrum`.

## Installation

```
pip install .
```

## Example

```python
from scrumdinger.errs import AppError, ErrCode

err = AppError(ErrCode.INVALID_ARGUMENT, "missing kid")
print(err.http_status())   # 400
print(err.encode())        # (b'{"code":"invalid_argument","message":"missing kid"}', 'application/json')
```

Authorization rules are checked against the claims of the caller:

```python
from scrumdinger.auth import Claims, evaluate_rule

claims = Claims(subject="5cf37266-3473-4006-984f-9325122678b7", roles=["ADMIN"])
evaluate_rule("rule_admin_only", claims, None)   # True
```

Middleware wraps a handler:

```python
from scrumdinger.context import Request, RequestContext
from scrumdinger.middleware import errors, panics

def handler(ctx, request):
    raise RuntimeError("boom")

wrapped = errors()(panics()(handler))
resp = wrapped(RequestContext(), Request())
print(resp.code, resp.message)   # internal Internal Server Error
```

## What the package does not do

- It has no HTTP server, router or command to start a service. Handlers and
  middleware are plain callables taking a `RequestContext` and a `Request`;
  binding them to routes and serving them is left to the caller.
- It has no storage. The user and scrum stores, the key store behind
  `KeyLookup`, the database readiness check and the transaction source are
  passed in by the caller.
- It has no handlers for managing users, and no listing of scrums.

## Running the tests

```
pip install .[test]
pytest
```