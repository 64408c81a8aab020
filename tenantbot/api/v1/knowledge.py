# tenantbot/api/v1/knowledge.py
from fastapi import APIRouter, Depends, Path, Query

from tenantbot.api.dependencies import get_database, get_tenant_context
from tenantbot.core.database import Database
from tenantbot.core.knowledge import KnowledgeManager
from tenantbot.models.schemas import KnowledgeCreate, KnowledgeUpdate, TenantContext

router = APIRouter(prefix="/knowledge", tags=["knowledge"])

def get_knowledge_manager(db: Database = Depends(get_database)) -> KnowledgeManager:
    return KnowledgeManager(db)

@router.post("", summary="Añadir conocimiento al bot")
async def add_knowledge(
    body: KnowledgeCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    manager: KnowledgeManager = Depends(get_knowledge_manager),
):
    """
    Divide el texto en fragmentos, calcula sus embeddings y los guarda.

    Raises:
        HTTPException:
            - 400 si no hay API key de embeddings o el origen no es válido
            - 403 si el bot no pertenece al usuario
    """
    documents = await manager.add_knowledge(
        tenant,
        body.bot_id,
        body.text,
        source_type=body.source_type,
        source_metadata=body.source_metadata,
    )
    return {"success": True, "document_ids": [doc["id"] for doc in documents], "chunks": len(documents)}

@router.get("", summary="Listar documentos del bot")
async def list_documents(
    bot_id: str = Query(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: KnowledgeManager = Depends(get_knowledge_manager),
):
    return {"documents": await manager.list_documents(tenant, bot_id)}

@router.put("/{document_id}", summary="Editar un documento")
async def update_document(
    body: KnowledgeUpdate,
    document_id: str = Path(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: KnowledgeManager = Depends(get_knowledge_manager),
):
    return await manager.update_document(tenant, document_id, body.text)

@router.delete("/{document_id}", summary="Eliminar un documento")
async def delete_document(
    document_id: str = Path(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: KnowledgeManager = Depends(get_knowledge_manager),
):
    return {"success": await manager.delete_document(tenant, document_id)}
