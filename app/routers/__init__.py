# HTTP routers for the ScopeGuard API
