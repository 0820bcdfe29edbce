"""Recipe tables that reference stored media."""

from uuid import UUID

from sqlalchemy import Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from larder.db.base import Base


class Recipe(Base):
    """A recipe. Only the columns the media pipeline touches are modelled."""

    __tablename__ = "recipes"

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    # Thumbnail / cover image URL
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    steps: Mapped[list["RecipeStep"]] = relationship(
        back_populates="recipe", cascade="all, delete-orphan", order_by="RecipeStep.position"
    )
    images: Mapped[list["RecipeImage"]] = relationship(
        back_populates="recipe", cascade="all, delete-orphan", order_by="RecipeImage.order"
    )
    videos: Mapped[list["RecipeVideo"]] = relationship(
        back_populates="recipe", cascade="all, delete-orphan", order_by="RecipeVideo.order"
    )


class RecipeStep(Base):
    __tablename__ = "recipe_steps"

    recipe_id: Mapped[UUID] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    recipe: Mapped[Recipe] = relationship(back_populates="steps")


class RecipeImage(Base):
    """Gallery image attached to a recipe."""

    __tablename__ = "recipe_images"

    recipe_id: Mapped[UUID] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image: Mapped[str] = mapped_column(String(1024), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped[Recipe] = relationship(back_populates="images")


class RecipeVideo(Base):
    """Gallery video attached to a recipe."""

    __tablename__ = "recipe_videos"

    recipe_id: Mapped[UUID] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    video: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumbnail: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped[Recipe] = relationship(back_populates="videos")
