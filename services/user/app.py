from fastapi import FastAPI, HTTPException

app = FastAPI(title="User Service (stub)")

USERS = {
    1: {"id": 1, "name": "Deniz", "username": "deniz", "email": "deniz@example.com"},
    42: {"id": 42, "name": "Alice", "username": "alice", "email": "alice@example.com"},
}


@app.get("/api/users")
def list_users():
    return list(USERS.values())


@app.get("/api/users/{user_id}")
def get_user(user_id: int):
    user = USERS.get(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


@app.get("/actuator/health")
def health():
    return {"status": "UP"}
