from fastapi import Depends, FastAPI, HTTPException

from goalgate.client import UserClient
from goalgate.registry import registry_from_settings
from goalgate.settings import settings

app = FastAPI(title="Challenge Service (stub)")

CHALLENGES = {
    1: {"id": 1, "title": "Run 100 km in a month", "creatorId": 42},
    2: {"id": 2, "title": "Read 12 books this year", "creatorId": 999},
}

_user_client: UserClient | None = None


def get_user_client() -> UserClient:
    global _user_client
    if _user_client is None:
        _user_client = UserClient(registry_from_settings(settings))
    return _user_client


@app.get("/api/challenges/{challenge_id}")
def get_challenge(challenge_id: int, users: UserClient = Depends(get_user_client)):
    challenge = CHALLENGES.get(challenge_id)
    if challenge is None:
        raise HTTPException(status_code=404, detail=f"Challenge {challenge_id} not found")

    # Blocks this worker thread until the user service answers.
    result = users.get_user_by_id(challenge["creatorId"])
    if not result.ok:
        raise HTTPException(status_code=result.failure.http_status(), detail=result.failure.message)
    return {**challenge, "creator": result.value.model_dump()}


@app.get("/actuator/health")
def health():
    return {"status": "UP"}
