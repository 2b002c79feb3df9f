from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from generative.api.v1.generate import stream_events
from generative.client import GenerativeClient
from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.dependencies import get_client
from generative.schemas.generate import TemplateGenerateRequest, TemplateGenerateResponse
from generative.schemas.templates import ConfigTemplate, PromptTemplate

router = APIRouter()


def _template_not_found(kind: str, template_id: str) -> GenerativeError:
    return GenerativeError(
        f"{kind} template '{template_id}' not found",
        GenerativeErrorCode.VALIDATION_FAILED,
        context={"template_id": template_id},
    )


@router.get("/v1/templates/config")
async def list_config_templates(client: GenerativeClient = Depends(get_client)) -> list[ConfigTemplate]:
    return await client.list_config_templates()


@router.get("/v1/templates/config/{template_id}")
async def get_config_template(template_id: str, client: GenerativeClient = Depends(get_client)) -> ConfigTemplate:
    template = await client.get_config_template(template_id)
    if template is None:
        raise _template_not_found("Configuration", template_id)
    return template


@router.post("/v1/templates/config/{template_id}/apply/{model_id}")
async def apply_config_template(
    template_id: str,
    model_id: str,
    client: GenerativeClient = Depends(get_client),
) -> dict:
    await client.apply_config_template(model_id, template_id)
    return {"status": "applied", "model_id": model_id, "template_id": template_id}


@router.get("/v1/templates/prompt")
async def list_prompt_templates(client: GenerativeClient = Depends(get_client)) -> list[PromptTemplate]:
    return await client.list_prompt_templates()


@router.get("/v1/templates/prompt/{template_id}")
async def get_prompt_template(template_id: str, client: GenerativeClient = Depends(get_client)) -> PromptTemplate:
    template = await client.get_prompt_template(template_id)
    if template is None:
        raise _template_not_found("Prompt", template_id)
    return template


@router.post("/v1/templates/prompt/{template_id}/generate", response_model=None)
async def generate_from_template(
    template_id: str,
    body: TemplateGenerateRequest,
    client: GenerativeClient = Depends(get_client),
) -> TemplateGenerateResponse | StreamingResponse:
    if body.options is not None and body.options.stream:
        return StreamingResponse(
            stream_events(
                lambda handler: client.generate_from_template(template_id, body.variables, body.options, handler)
            ),
            media_type="application/x-ndjson",
        )

    text = await client.generate_from_template(template_id, body.variables, body.options)
    return TemplateGenerateResponse(template_id=template_id, response=text)
