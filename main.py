from __future__ import annotations

from fastapi import FastAPI, HTTPException, Response, status

from dea import db
from dea.agents import Agents
from dea.api_models import AgentsRequest, ContainerOut, CreateAgentRequest, PingResponse
from dea.docker_ops import EngineError
from dea.ping import server_ping
from dea.reconciler import DockerContainers
from dea.registry import ContainerRecord
from dea.settings import Settings, settings


def _out(record: ContainerRecord) -> ContainerOut:
    return ContainerOut(
        identity=record.identity,
        created_at=record.created_at,
        image=record.image,
        environment=record.environment,
    )


def create_app(instances: DockerContainers | None = None, cfg: Settings | None = None) -> FastAPI:
    app = FastAPI(title="Docker Elastic Agents")
    instances = instances if instances is not None else DockerContainers()
    cfg = cfg or settings
    app.state.instances = instances

    @app.on_event("startup")
    def startup() -> None:
        db.init_db()

    @app.get("/health")
    def health():
        return {
            "status": "healthy",
            "docker": "up" if instances.engine_available(cfg) else "down",
            "hydration": instances.hydration.state,
        }

    @app.get("/containers", response_model=list[ContainerOut])
    def list_containers():
        return [_out(r) for r in instances.all()]

    @app.get("/containers/{identity}", response_model=ContainerOut)
    def get_container(identity: str):
        record = instances.find(identity)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Unknown container '{identity}'")
        return _out(record)

    @app.post("/agents", response_model=ContainerOut, status_code=status.HTTP_201_CREATED)
    def create_agent(req: CreateAgentRequest):
        try:
            return _out(instances.create(req, cfg))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except EngineError as e:
            db.log_event("ERROR", f"Could not create agent: {e}")
            raise HTTPException(status_code=502, detail=str(e))

    @app.post("/agents/{identity}/refresh", response_model=ContainerOut)
    def refresh_agent(identity: str):
        try:
            instances.refresh(identity, cfg)
        except EngineError as e:
            raise HTTPException(status_code=502, detail=str(e))
        record = instances.find(identity)
        if record is None:
            raise HTTPException(status_code=404, detail=f"No container named '{identity}'")
        return _out(record)

    @app.delete("/agents/{identity}", status_code=status.HTTP_204_NO_CONTENT)
    def terminate_agent(identity: str):
        try:
            instances.terminate(identity, cfg)
        except EngineError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/agents/recent")
    def recent_agents(req: AgentsRequest):
        recent = instances.instances_created_after_timeout(cfg, Agents(req.agents))
        return {"agents": [a.model_dump(mode="json") for a in recent]}

    @app.post("/ping", response_model=PingResponse)
    def ping(req: AgentsRequest):
        try:
            result = server_ping(instances, cfg, Agents(req.agents))
        except EngineError as e:
            db.log_event("ERROR", f"Server ping failed: {type(e).__name__}: {e}")
            raise HTTPException(status_code=502, detail=str(e))
        return PingResponse(disable=result.disable, delete=result.delete, terminated=result.terminated)

    @app.get("/events")
    def events(limit: int = 100, level: str | None = None):
        return db.latest_events(limit=max(1, min(1000, limit)), level=level)

    return app


app = create_app()
